#!/usr/bin/env python3

from decimal import Decimal
from audiocutlib.core import utils
from audiocutlib.core import plan as plan_module
from audiocutlib.core import segments
from audiocutlib.media import ffmpeg

#============================================

STATUS_PASS = 'Pass'
STATUS_FAIL = 'Fail'

DEFAULT_TOLERANCE = Decimal('0.01')
DEFAULT_MAX_GAP_SECONDS = Decimal('60')
TOTALS_EPSILON = Decimal('0.000001')

#============================================

class VerificationReport():
	def __init__(self, expected_duration, actual_duration, keep_expected_total,
		keep_actual_total, tolerance, diagnostics: list = None):
		self.expected_duration = utils.snap_time(expected_duration)
		self.actual_duration = utils.snap_time(actual_duration)
		self.duration_delta = abs(self.expected_duration - self.actual_duration)
		self.keep_segments_expected_total = utils.snap_time(keep_expected_total)
		self.keep_segments_actual_total = utils.snap_time(keep_actual_total)
		self.segments_delta = abs(
			self.keep_segments_expected_total - self.keep_segments_actual_total
		)
		self.tolerance = utils.snap_time(tolerance)
		self.diagnostics = list(diagnostics or [])
		# the boundary itself passes
		if self.duration_delta <= self.tolerance:
			self.status = STATUS_PASS
		else:
			self.status = STATUS_FAIL

	#============================
	@property
	def passed(self) -> bool:
		return self.status == STATUS_PASS

	#============================
	def to_dict(self) -> dict:
		return {
			'expectedDurationSeconds': float(self.expected_duration),
			'actualDurationSeconds': float(self.actual_duration),
			'durationDeltaSeconds': float(self.duration_delta),
			'keepSegmentsExpectedTotal': float(self.keep_segments_expected_total),
			'keepSegmentsActualTotal': float(self.keep_segments_actual_total),
			'segmentsDeltaSeconds': float(self.segments_delta),
			'status': self.status,
			'toleranceSeconds': float(self.tolerance),
			'diagnostics': list(self.diagnostics),
		}

	#============================
	def summary(self) -> str:
		return (
			f"{self.status}: expected {utils.format_seconds(self.expected_duration)}s, "
			f"actual {utils.format_seconds(self.actual_duration)}s, "
			f"delta {utils.format_seconds(self.duration_delta)}s "
			f"(tolerance {utils.format_seconds(self.tolerance)}s)"
		)

#============================================

class OutputVerifier():
	"""
	Compare a produced output against the duration its plan implies.

	Args:
		tolerance: Largest duration delta that still passes.
		max_gap_seconds: Keep-segment gaps above this are flagged.
		probe: Callable returning an output file's duration in seconds.
	"""
	def __init__(self, tolerance=DEFAULT_TOLERANCE,
		max_gap_seconds=DEFAULT_MAX_GAP_SECONDS, probe=None):
		self.tolerance = utils.snap_time(tolerance)
		self.max_gap_seconds = utils.snap_time(max_gap_seconds)
		if probe is None:
			probe = ffmpeg.probe_duration
		self.probe = probe

	#============================
	@classmethod
	def from_settings(cls, settings: dict, probe=None):
		return cls(settings['tolerance'], settings['max_gap_seconds'], probe)

	#============================
	def expected_duration(self, edit_plan) -> Decimal:
		mode = edit_plan.mode
		if mode == plan_module.MODE_REGIONS:
			total = Decimal(0)
			for region in edit_plan.regions:
				total += region.output_duration()
			return total
		if mode == plan_module.MODE_SILENCE:
			source_total = segments.total_duration(edit_plan.keep_segments)
		elif mode == plan_module.MODE_INVERT:
			source_total = edit_plan.source_duration - edit_plan.trim_duration
		else:
			source_total = edit_plan.trim_duration
		return utils.snap_time(source_total / edit_plan.tempo)

	#============================
	def expected_keep_total(self, edit_plan) -> Decimal:
		if edit_plan.mode == plan_module.MODE_REGIONS:
			return self.expected_duration(edit_plan)
		if len(edit_plan.keep_segments) == 0:
			return self.expected_duration(edit_plan)
		total = Decimal(0)
		for segment in edit_plan.keep_segments:
			total += utils.snap_time(segment.duration / edit_plan.tempo)
		return total

	#============================
	def continuity_diagnostics(self, edit_plan) -> list:
		"""
		Flag overlaps, large gaps and totals that do not add up.

		Returns:
			list: Human readable diagnostic strings.
		"""
		diagnostics = []
		keep = edit_plan.keep_segments
		for index in range(1, len(keep)):
			gap = keep[index].start - keep[index - 1].end
			if gap < 0:
				diagnostics.append(
					f"keep segments {index - 1} and {index} overlap by "
					f"{utils.format_seconds(-gap)}s"
				)
			elif gap > self.max_gap_seconds:
				diagnostics.append(
					f"gap of {utils.format_seconds(gap)}s between keep segments "
					f"{index - 1} and {index}"
				)
		if edit_plan.mode == plan_module.MODE_SILENCE and len(keep) > 0:
			keep_total = segments.total_duration(keep)
			silence_total = segments.total_duration(edit_plan.silence_segments)
			expected = edit_plan.trim_duration - silence_total
			if abs(keep_total - expected) > TOTALS_EPSILON:
				diagnostics.append(
					f"keep total {utils.format_seconds(keep_total)}s does not match "
					f"region minus silence {utils.format_seconds(expected)}s"
				)
		return diagnostics

	#============================
	def build_report(self, edit_plan, actual_duration) -> VerificationReport:
		actual = utils.snap_time(actual_duration)
		return VerificationReport(
			self.expected_duration(edit_plan),
			actual,
			self.expected_keep_total(edit_plan),
			actual,
			self.tolerance,
			self.continuity_diagnostics(edit_plan),
		)

	#============================
	def verify(self, edit_plan, output_path: str) -> VerificationReport:
		actual = self.probe(output_path)
		report = self.build_report(edit_plan, actual)
		utils.log_message(f"verify: {report.summary()}")
		for diagnostic in report.diagnostics:
			utils.log_message(f"  diagnostic: {diagnostic}")
		return report
