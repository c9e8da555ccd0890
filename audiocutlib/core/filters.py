#!/usr/bin/env python3

from decimal import Decimal
from audiocutlib.core import utils
from audiocutlib.core import plan as plan_module

#============================================

STAGE_TEMPO = 'tempo'
STAGE_FADE = 'fade'
STAGE_VOLUME = 'volume'
STAGE_PITCH = 'pitch'

TEMPO_STAGE_MIN = Decimal('0.5')
TEMPO_STAGE_MAX = Decimal('2.0')
NOOP_EPSILON = Decimal('0.000001')

#============================================

class FilterStage():
	def __init__(self, kind: str, params):
		self.kind = kind
		self.params = params

	#============================
	def to_dict(self) -> dict:
		if isinstance(self.params, dict):
			params = {}
			for key, value in self.params.items():
				if isinstance(value, Decimal):
					value = float(value)
				params[key] = value
		else:
			params = float(self.params)
		return {'kind': self.kind, 'params': params}

	#============================
	def __eq__(self, other) -> bool:
		if not isinstance(other, FilterStage):
			return NotImplemented
		return self.kind == other.kind and self.params == other.params

	#============================
	def __repr__(self) -> str:
		return f"FilterStage({self.kind!r}, {self.params!r})"

#============================================

class SourceSpan():
	"""One contiguous span of the input, with its own stages in regions mode."""
	def __init__(self, start, end, stages: list = None, label: str = None):
		self.start = utils.snap_time(start)
		self.end = utils.snap_time(end)
		self.stages = list(stages or [])
		self.label = label

	#============================
	@property
	def duration(self) -> Decimal:
		return self.end - self.start

	#============================
	def to_dict(self) -> dict:
		data = {
			'start': float(self.start),
			'end': float(self.end),
			'stages': [stage.to_dict() for stage in self.stages],
		}
		if self.label is not None:
			data['label'] = self.label
		return data

#============================================

class FilterGraph():
	def __init__(self, sources: list, stages: list, seek_offset, output_duration):
		self.sources = sources
		self.stages = stages
		self.seek_offset = utils.snap_time(seek_offset)
		self.output_duration = utils.snap_time(output_duration)

	#============================
	@property
	def is_single_span(self) -> bool:
		return len(self.sources) == 1

	#============================
	def all_stages(self) -> list:
		stages = []
		for source in self.sources:
			stages.extend(source.stages)
		stages.extend(self.stages)
		return stages

	#============================
	def to_dict(self) -> dict:
		return {
			'sources': [source.to_dict() for source in self.sources],
			'stages': [stage.to_dict() for stage in self.stages],
			'seekOffset': float(self.seek_offset),
			'outputDuration': float(self.output_duration),
		}

#============================================

def build_tempo_chain(multiplier) -> list:
	"""
	Split a tempo multiplier into stages that each lie in [0.5, 2.0].

	Args:
		multiplier: Requested tempo multiplier.

	Returns:
		list: Tempo FilterStage values whose product is the multiplier.
	"""
	remaining = utils.to_decimal(multiplier)
	if remaining <= 0:
		raise RuntimeError(f"tempo multiplier must be positive: {multiplier}")
	stages = []
	while remaining > TEMPO_STAGE_MAX:
		stages.append(FilterStage(STAGE_TEMPO, TEMPO_STAGE_MAX))
		remaining = remaining / TEMPO_STAGE_MAX
	while remaining < TEMPO_STAGE_MIN:
		stages.append(FilterStage(STAGE_TEMPO, TEMPO_STAGE_MIN))
		remaining = remaining * Decimal(2)
	if abs(remaining - Decimal(1)) > NOOP_EPSILON:
		stages.append(FilterStage(STAGE_TEMPO, utils.snap_time(remaining)))
	return stages

#============================================

def tempo_chain_product(stages: list) -> Decimal:
	product = Decimal(1)
	for stage in stages:
		if stage.kind == STAGE_TEMPO:
			product *= utils.to_decimal(stage.params)
	return product

#============================================

class FilterGraphBuilder():
	def build_tempo_chain(self, multiplier) -> list:
		return build_tempo_chain(multiplier)

	#============================
	def build_chain(self, duration, tempo=Decimal(1), pitch=Decimal(0),
		volume=Decimal(1), fade_in=Decimal(0), fade_out=Decimal(0)) -> list:
		"""
		Build the ordered stage list for one segment.

		Stage order is volume, pitch, tempo, fade-in, fade-out. Fade times are
		relative to the tempo-adjusted segment.

		Args:
			duration: Source segment duration in seconds.
			tempo: Tempo multiplier.
			pitch: Pitch shift in semitones.
			volume: Volume multiplier.
			fade_in: Fade-in seconds.
			fade_out: Fade-out seconds.

		Returns:
			list: FilterStage values.
		"""
		tempo = utils.snap_time(tempo)
		pitch = utils.snap_time(pitch)
		volume = utils.snap_time(volume)
		fade_in = utils.snap_time(fade_in)
		fade_out = utils.snap_time(fade_out)
		stages = []
		if abs(volume - Decimal(1)) > NOOP_EPSILON:
			stages.append(FilterStage(STAGE_VOLUME, volume))
		if abs(pitch) > NOOP_EPSILON:
			stages.append(FilterStage(STAGE_PITCH, pitch))
		stages.extend(build_tempo_chain(tempo))
		output_duration = utils.snap_time(utils.to_decimal(duration) / tempo)
		if fade_in > 0:
			stages.append(FilterStage(STAGE_FADE, {
				'direction': 'in',
				'startSeconds': Decimal(0),
				'durationSeconds': min(fade_in, output_duration),
			}))
		if fade_out > 0:
			start = max(Decimal(0), output_duration - fade_out)
			stages.append(FilterStage(STAGE_FADE, {
				'direction': 'out',
				'startSeconds': utils.snap_time(start),
				'durationSeconds': min(fade_out, output_duration),
			}))
		return stages

	#============================
	def build(self, edit_plan) -> FilterGraph:
		"""
		Turn an EditPlan into a FilterGraph for the render command.
		"""
		mode = edit_plan.mode
		if mode == plan_module.MODE_REGIONS:
			return self._build_regions(edit_plan)
		if mode == plan_module.MODE_SILENCE:
			if len(edit_plan.keep_segments) == 0:
				raise RuntimeError("keep segments must be computed before building")
			spans = [(segment.start, segment.end) for segment in edit_plan.keep_segments]
		elif mode == plan_module.MODE_INVERT:
			spans = self._invert_spans(edit_plan)
		else:
			spans = [(edit_plan.trim_start, edit_plan.trim_end)]
		sources = [SourceSpan(start, end) for start, end in spans]
		total = sum((source.duration for source in sources), Decimal(0))
		stages = self.build_chain(total, edit_plan.tempo, edit_plan.pitch,
			edit_plan.volume, edit_plan.fade_in, edit_plan.fade_out)
		output_duration = utils.snap_time(total / edit_plan.tempo)
		return FilterGraph(sources, stages, self._seek_offset(sources),
			output_duration)

	#============================
	def _invert_spans(self, edit_plan) -> list:
		spans = []
		if edit_plan.trim_start > 0:
			spans.append((Decimal(0), edit_plan.trim_start))
		if edit_plan.trim_end < edit_plan.source_duration:
			spans.append((edit_plan.trim_end, edit_plan.source_duration))
		if len(spans) == 0:
			raise RuntimeError("inverted trim range leaves nothing to keep")
		return spans

	#============================
	def _build_regions(self, edit_plan) -> FilterGraph:
		sources = []
		output_duration = Decimal(0)
		for region in edit_plan.regions:
			stages = self.build_chain(region.duration, region.tempo, region.pitch,
				region.volume, region.fade_in, region.fade_out)
			sources.append(SourceSpan(region.start, region.end, stages,
				label=region.region_id))
			output_duration += region.output_duration()
		return FilterGraph(sources, [], self._seek_offset(sources),
			output_duration)

	#============================
	def _seek_offset(self, sources: list) -> Decimal:
		if len(sources) == 1:
			return sources[0].start
		return Decimal(0)
