#!/usr/bin/env python3

from decimal import Decimal
from audiocutlib.core import utils

#============================================

MODE_TRIM = 'trim'
MODE_INVERT = 'invert'
MODE_SILENCE = 'silence'
MODE_REGIONS = 'regions'

#============================================

class TimeSpan():
	"""A half-open interval [start, end) on the precision grid."""
	def __init__(self, start, end):
		self.start = utils.snap_time(start)
		self.end = utils.snap_time(end)

	#============================
	@property
	def duration(self) -> Decimal:
		return self.end - self.start

	#============================
	def to_dict(self) -> dict:
		return {
			'start': float(self.start),
			'end': float(self.end),
			'duration': float(self.duration),
		}

	#============================
	def __eq__(self, other) -> bool:
		if not isinstance(other, TimeSpan):
			return NotImplemented
		return self.start == other.start and self.end == other.end

	#============================
	def __hash__(self) -> int:
		return hash((self.start, self.end))

	#============================
	def __repr__(self) -> str:
		return f"{type(self).__name__}({self.start}, {self.end})"

#============================================

class SilenceWindow(TimeSpan):
	pass

#============================================

class KeepSegment(TimeSpan):
	pass

#============================================

class RegionPlan():
	def __init__(self, region_id: str, start, end, tempo=Decimal(1),
		pitch=Decimal(0), volume=Decimal(1), fade_in=Decimal(0),
		fade_out=Decimal(0)):
		self.region_id = region_id
		self.start = utils.snap_time(start)
		self.end = utils.snap_time(end)
		self.tempo = utils.snap_time(tempo)
		self.pitch = utils.snap_time(pitch)
		self.volume = utils.snap_time(volume)
		self.fade_in = utils.snap_time(fade_in)
		self.fade_out = utils.snap_time(fade_out)

	#============================
	@property
	def duration(self) -> Decimal:
		return self.end - self.start

	#============================
	def output_duration(self) -> Decimal:
		return utils.snap_time(self.duration / self.tempo)

	#============================
	def to_dict(self) -> dict:
		return {
			'id': self.region_id,
			'start': float(self.start),
			'end': float(self.end),
			'tempoMultiplier': float(self.tempo),
			'pitchSemitones': float(self.pitch),
			'volumeMultiplier': float(self.volume),
			'fadeInSeconds': float(self.fade_in),
			'fadeOutSeconds': float(self.fade_out),
		}

#============================================

class SilenceParams():
	def __init__(self, threshold_db: float, min_duration, region_start,
		region_end, windows: list = None):
		self.threshold_db = float(threshold_db)
		self.min_duration = utils.snap_time(min_duration)
		self.region_start = utils.snap_time(region_start)
		self.region_end = utils.snap_time(region_end)
		# None means the detection pass still has to run
		self.windows = windows

	#============================
	def to_dict(self) -> dict:
		data = {
			'thresholdDb': self.threshold_db,
			'minDurationSeconds': float(self.min_duration),
			'regionStart': float(self.region_start),
			'regionEnd': float(self.region_end),
		}
		if self.windows is not None:
			data['windows'] = [window.to_dict() for window in self.windows]
		return data

#============================================

class EditPlan():
	def __init__(self, source_duration, trim_start, trim_end,
		fade_in=Decimal(0), fade_out=Decimal(0), tempo=Decimal(1),
		pitch=Decimal(0), volume=Decimal(1), invert: bool = False,
		regions: list = None, silence: SilenceParams = None,
		output_format: str = 'mp3', quality: str = 'medium'):
		self.source_duration = utils.snap_time(source_duration)
		self.trim_start = utils.snap_time(trim_start)
		self.trim_end = utils.snap_time(trim_end)
		self.fade_in = utils.snap_time(fade_in)
		self.fade_out = utils.snap_time(fade_out)
		self.tempo = utils.snap_time(tempo)
		self.pitch = utils.snap_time(pitch)
		self.volume = utils.snap_time(volume)
		self.invert = bool(invert)
		self.regions = list(regions or [])
		self.silence = silence
		self.output_format = output_format
		self.quality = quality
		self.keep_segments = []
		self.silence_segments = []

	#============================
	@property
	def mode(self) -> str:
		if len(self.regions) > 0:
			return MODE_REGIONS
		if self.silence is not None:
			return MODE_SILENCE
		if self.invert:
			return MODE_INVERT
		return MODE_TRIM

	#============================
	@property
	def trim_duration(self) -> Decimal:
		return self.trim_end - self.trim_start

	#============================
	def with_segments(self, keep_segments: list, silence_segments: list = None):
		"""Return a copy of the plan carrying computed keep segments."""
		plan = EditPlan(self.source_duration, self.trim_start, self.trim_end,
			fade_in=self.fade_in, fade_out=self.fade_out, tempo=self.tempo,
			pitch=self.pitch, volume=self.volume, invert=self.invert,
			regions=self.regions, silence=self.silence,
			output_format=self.output_format, quality=self.quality)
		plan.keep_segments = list(keep_segments)
		plan.silence_segments = list(silence_segments or [])
		return plan

	#============================
	def to_dict(self) -> dict:
		data = {
			'mode': self.mode,
			'sourceDurationSeconds': float(self.source_duration),
			'trimStart': float(self.trim_start),
			'trimEnd': float(self.trim_end),
			'fadeInSeconds': float(self.fade_in),
			'fadeOutSeconds': float(self.fade_out),
			'tempoMultiplier': float(self.tempo),
			'pitchSemitones': float(self.pitch),
			'volumeMultiplier': float(self.volume),
			'invert': self.invert,
			'regions': [region.to_dict() for region in self.regions],
			'outputFormat': self.output_format,
			'quality': self.quality,
		}
		if self.silence is not None:
			data['silence'] = self.silence.to_dict()
		if len(self.keep_segments) > 0:
			data['keepSegments'] = [segment.to_dict() for segment in self.keep_segments]
		return data
