#!/usr/bin/env python3

"""
Interval algebra for silence removal.

Raw silence windows are clipped to a target region, merged, and complemented
into the keep segments that survive. Every boundary stays on the precision
grid from audiocutlib.core.utils.
"""

from decimal import Decimal
from audiocutlib.core import utils
from audiocutlib.core.errors import EmptyResultError
from audiocutlib.core.plan import KeepSegment
from audiocutlib.core.plan import SilenceWindow

#============================================

DEFAULT_MERGE_EPSILON = Decimal('0.01')
DEFAULT_MIN_SEGMENT_SECONDS = Decimal('0.0001')

#============================================

class SegmentResult():
	def __init__(self, keep_segments: list, silences: list, region_start,
		region_end):
		self.keep_segments = keep_segments
		self.silences = silences
		self.region_start = utils.snap_time(region_start)
		self.region_end = utils.snap_time(region_end)

	#============================
	@property
	def region_duration(self) -> Decimal:
		return self.region_end - self.region_start

	#============================
	@property
	def keep_total(self) -> Decimal:
		return sum((segment.duration for segment in self.keep_segments), Decimal(0))

	#============================
	@property
	def silence_total(self) -> Decimal:
		return sum((window.duration for window in self.silences), Decimal(0))

	#============================
	def to_dict(self) -> dict:
		return {
			'regionStart': float(self.region_start),
			'regionEnd': float(self.region_end),
			'keepSegments': [segment.to_dict() for segment in self.keep_segments],
			'silences': [window.to_dict() for window in self.silences],
			'keepTotal': float(self.keep_total),
			'silenceTotal': float(self.silence_total),
		}

#============================================

def coerce_window(raw) -> SilenceWindow:
	"""
	Accept a SilenceWindow, a {start, end} mapping, or a (start, end) pair.
	"""
	if isinstance(raw, SilenceWindow):
		return raw
	if isinstance(raw, dict):
		return SilenceWindow(raw['start'], raw['end'])
	if isinstance(raw, (list, tuple)) and len(raw) == 2:
		return SilenceWindow(raw[0], raw[1])
	raise RuntimeError(f"unsupported silence window: {raw!r}")

#============================================

class SegmentAlgebra():
	def __init__(self, merge_epsilon=DEFAULT_MERGE_EPSILON,
		min_segment_seconds=DEFAULT_MIN_SEGMENT_SECONDS):
		self.merge_epsilon = utils.snap_time(merge_epsilon)
		self.min_segment_seconds = utils.snap_time(min_segment_seconds)

	#============================
	@classmethod
	def from_settings(cls, settings: dict):
		return cls(settings['merge_epsilon'], settings['min_segment_seconds'])

	#============================
	def clip_windows(self, windows: list, region_start, region_end) -> list:
		"""
		Clip windows to the region and drop the ones that fall outside it.

		Args:
			windows: Raw windows in any order.
			region_start: Region start seconds.
			region_end: Region end seconds.

		Returns:
			list: SilenceWindow values inside the region.
		"""
		start = utils.snap_time(region_start)
		end = utils.snap_time(region_end)
		clipped = []
		for raw in windows:
			window = coerce_window(raw)
			if window.end <= start or window.start >= end:
				continue
			clip_start = max(window.start, start)
			clip_end = min(window.end, end)
			if clip_end <= clip_start:
				continue
			clipped.append(SilenceWindow(clip_start, clip_end))
		return clipped

	#============================
	def merge_windows(self, windows: list) -> list:
		"""
		Merge overlapping windows and windows separated by at most merge_epsilon.

		Args:
			windows: SilenceWindow values in any order.

		Returns:
			list: Sorted, disjoint SilenceWindow values.
		"""
		if len(windows) == 0:
			return []
		ordered = sorted(windows, key=lambda item: (item.start, item.end))
		merged = []
		current_start = ordered[0].start
		current_end = ordered[0].end
		for window in ordered[1:]:
			gap = window.start - current_end
			if gap <= self.merge_epsilon:
				if window.end > current_end:
					current_end = window.end
			else:
				merged.append(SilenceWindow(current_start, current_end))
				current_start = window.start
				current_end = window.end
		merged.append(SilenceWindow(current_start, current_end))
		return merged

	#============================
	def complement_windows(self, windows: list, region_start, region_end) -> list:
		"""
		Emit the keep segments between sorted, disjoint windows.
		"""
		start = utils.snap_time(region_start)
		end = utils.snap_time(region_end)
		keep = []
		cursor = start
		for window in windows:
			if window.start > cursor:
				keep.append(KeepSegment(cursor, window.start))
			if window.end > cursor:
				cursor = window.end
		if cursor < end:
			keep.append(KeepSegment(cursor, end))
		return keep

	#============================
	def drop_short_segments(self, segments: list) -> list:
		kept = []
		for segment in segments:
			if segment.duration < self.min_segment_seconds:
				continue
			kept.append(segment)
		return kept

	#============================
	def compute(self, windows: list, region_start, region_end) -> SegmentResult:
		"""
		Compute keep segments for a region from raw silence windows.

		Short keep candidates are dropped and their material is folded back
		into the silence list, so keep_total + silence_total always equals
		region_duration.

		Args:
			windows: Raw silence windows in any order.
			region_start: Region start seconds.
			region_end: Region end seconds.

		Returns:
			SegmentResult: Keep segments and the silences they complement.
		"""
		start = utils.snap_time(region_start)
		end = utils.snap_time(region_end)
		if end <= start:
			raise RuntimeError(f"invalid region {start}-{end}")
		clipped = self.clip_windows(windows or [], start, end)
		merged = self.merge_windows(clipped)
		candidates = self.complement_windows(merged, start, end)
		keep_segments = self.drop_short_segments(candidates)
		if len(keep_segments) == 0:
			raise EmptyResultError(start, end)
		silences = []
		for span in self.complement_windows(keep_segments, start, end):
			silences.append(SilenceWindow(span.start, span.end))
		return SegmentResult(keep_segments, silences, start, end)

#============================================

def compute_keep_segments(windows: list, region_start, region_end,
	merge_epsilon=DEFAULT_MERGE_EPSILON,
	min_segment_seconds=DEFAULT_MIN_SEGMENT_SECONDS) -> list:
	algebra = SegmentAlgebra(merge_epsilon, min_segment_seconds)
	result = algebra.compute(windows, region_start, region_end)
	return result.keep_segments

#============================================

def attach_outer_material(keep_segments: list, outer_start, outer_end,
	inner_start, inner_end) -> list:
	"""
	Add untouched material outside a silence sub-region.

	The spans [outer_start, inner_start) and [inner_end, outer_end) are kept
	as-is and joined to adjacent keep segments when they touch.

	Args:
		keep_segments: Keep segments computed inside the sub-region.
		outer_start: Trim start seconds.
		outer_end: Trim end seconds.
		inner_start: Sub-region start seconds.
		inner_end: Sub-region end seconds.

	Returns:
		list: Sorted, disjoint KeepSegment values.
	"""
	spans = list(keep_segments)
	outer_start = utils.snap_time(outer_start)
	outer_end = utils.snap_time(outer_end)
	inner_start = utils.snap_time(inner_start)
	inner_end = utils.snap_time(inner_end)
	if inner_start > outer_start:
		spans.insert(0, KeepSegment(outer_start, inner_start))
	if outer_end > inner_end:
		spans.append(KeepSegment(inner_end, outer_end))
	joined = []
	for span in spans:
		if len(joined) > 0 and joined[-1].end == span.start:
			joined[-1] = KeepSegment(joined[-1].start, span.end)
			continue
		joined.append(span)
	return joined

#============================================

def total_duration(spans: list) -> Decimal:
	return sum((span.duration for span in spans), Decimal(0))
