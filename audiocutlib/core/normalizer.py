#!/usr/bin/env python3

from decimal import Decimal
from audiocutlib.core import config
from audiocutlib.core import utils
from audiocutlib.core.errors import ValidationError
from audiocutlib.core.plan import EditPlan
from audiocutlib.core.plan import RegionPlan
from audiocutlib.core.plan import SilenceParams
from audiocutlib.core.plan import SilenceWindow

#============================================

TEMPO_RANGE = (Decimal('0.25'), Decimal('4.0'))
PITCH_RANGE = (Decimal('-24'), Decimal('24'))
VOLUME_RANGE = (Decimal('0'), Decimal('2.0'))

#============================================

class RequestNormalizer():
	def __init__(self, settings: dict = None):
		if settings is None:
			settings = config.build_settings(None)
		self.settings = settings
		self.max_fade = utils.snap_time(settings['max_fade_seconds'])
		self.max_source = utils.snap_time(settings['max_source_seconds'])

	#============================
	def normalize(self, request: dict, source_duration=None) -> EditPlan:
		"""
		Validate an untrusted edit request and build the canonical plan.

		Args:
			request: Mapping decoded from JSON or YAML.
			source_duration: Probed duration used when the request omits one.

		Returns:
			EditPlan: Validated plan.
		"""
		if not isinstance(request, dict):
			raise ValidationError('request', "must be a mapping")
		duration = self._parse_source_duration(request, source_duration)
		trim_start = self._parse_time(request, 'trimStart', Decimal(0))
		trim_end = self._parse_time(request, 'trimEnd', duration)
		self._check_range(trim_start, trim_end, duration, 'trimStart', 'trimEnd')
		tempo = self._parse_bounded(request, 'tempoMultiplier', Decimal(1), TEMPO_RANGE)
		pitch = self._parse_bounded(request, 'pitchSemitones', Decimal(0), PITCH_RANGE)
		volume = self._parse_bounded(request, 'volumeMultiplier', Decimal(1), VOLUME_RANGE)
		fade_in = self._parse_fade(request, 'fadeInSeconds', Decimal(0))
		fade_out = self._parse_fade(request, 'fadeOutSeconds', Decimal(0))
		invert = self._parse_bool(request, 'invert', False)
		output_format = self._parse_choice(request, 'outputFormat',
			self.settings['output_format'], config.OUTPUT_FORMATS)
		quality = self._parse_choice(request, 'quality',
			self.settings['output_quality'], config.QUALITY_LEVELS)
		defaults = {
			'tempoMultiplier': tempo,
			'pitchSemitones': pitch,
			'volumeMultiplier': volume,
			'fadeInSeconds': fade_in,
			'fadeOutSeconds': fade_out,
		}
		regions = self._parse_regions(request.get('regions'), duration, defaults)
		silence = self._parse_silence(request.get('silence'), duration,
			trim_start, trim_end)
		self._check_mode_combination(regions, silence, invert)
		if len(regions) == 0:
			span = trim_end - trim_start
			if invert:
				span = duration - span
				if span <= 0:
					raise ValidationError('invert',
						"trim range covers the whole source, nothing to keep")
			self._check_fade_sum(fade_in, fade_out, span, tempo, 'fadeOutSeconds')
		return EditPlan(duration, trim_start, trim_end, fade_in=fade_in,
			fade_out=fade_out, tempo=tempo, pitch=pitch, volume=volume,
			invert=invert, regions=regions, silence=silence,
			output_format=output_format, quality=quality)

	#============================
	def _parse_source_duration(self, request: dict, fallback) -> Decimal:
		raw = request.get('sourceDurationSeconds')
		if raw is None:
			raw = fallback
		if raw is None:
			raise ValidationError('sourceDurationSeconds', "is required")
		duration = self._coerce_time(raw, 'sourceDurationSeconds')
		if duration <= 0:
			raise ValidationError('sourceDurationSeconds', "must be positive")
		if duration > self.max_source:
			raise ValidationError('sourceDurationSeconds',
				f"exceeds the maximum of {utils.format_seconds(self.max_source)} seconds")
		return duration

	#============================
	def _coerce_time(self, raw, field: str) -> Decimal:
		if isinstance(raw, bool):
			raise ValidationError(field, "must be a number or timecode")
		try:
			value = utils.parse_timecode(raw)
		except (RuntimeError, ArithmeticError, ValueError) as exc:
			raise ValidationError(field, "must be a number or timecode") from exc
		if not value.is_finite():
			raise ValidationError(field, "must be finite")
		return value

	#============================
	def _coerce_number(self, raw, field: str) -> Decimal:
		if isinstance(raw, bool) or not isinstance(raw, (int, float, str, Decimal)):
			raise ValidationError(field, "must be a number")
		try:
			value = utils.to_decimal(raw)
		except (RuntimeError, ArithmeticError, ValueError) as exc:
			raise ValidationError(field, "must be a number") from exc
		if not value.is_finite():
			raise ValidationError(field, "must be finite")
		return utils.snap_time(value)

	#============================
	def _parse_time(self, data: dict, key: str, default, prefix: str = "") -> Decimal:
		raw = data.get(key)
		if raw is None:
			return utils.snap_time(default)
		return self._coerce_time(raw, prefix + key)

	#============================
	def _parse_bounded(self, data: dict, key: str, default, bounds: tuple,
		prefix: str = "") -> Decimal:
		raw = data.get(key)
		if raw is None:
			return utils.snap_time(default)
		value = self._coerce_number(raw, prefix + key)
		low, high = bounds
		if value < low or value > high:
			raise ValidationError(prefix + key,
				f"must be between {utils.format_seconds(low)} and {utils.format_seconds(high)}")
		return value

	#============================
	def _parse_fade(self, data: dict, key: str, default, prefix: str = "") -> Decimal:
		raw = data.get(key)
		if raw is None:
			return utils.snap_time(default)
		value = self._coerce_number(raw, prefix + key)
		if value < 0:
			raise ValidationError(prefix + key, "must be non-negative")
		if value > self.max_fade:
			raise ValidationError(prefix + key,
				f"must not exceed {utils.format_seconds(self.max_fade)} seconds")
		return value

	#============================
	def _parse_bool(self, data: dict, key: str, default: bool) -> bool:
		raw = data.get(key)
		if raw is None:
			return default
		try:
			return config.coerce_bool(raw, 'request', key)
		except RuntimeError as exc:
			raise ValidationError(key, "must be a boolean") from exc

	#============================
	def _parse_choice(self, data: dict, key: str, default: str, choices: tuple) -> str:
		raw = data.get(key)
		if raw is None:
			return default
		value = str(raw).strip().lower()
		if value not in choices:
			raise ValidationError(key, f"must be one of {', '.join(choices)}")
		return value

	#============================
	def _check_range(self, start: Decimal, end: Decimal, duration: Decimal,
		start_field: str, end_field: str) -> None:
		if start < 0 or start > duration:
			raise ValidationError(start_field,
				f"must be within 0 and {utils.format_seconds(duration)}")
		if end < 0 or end > duration:
			raise ValidationError(end_field,
				f"must be within 0 and {utils.format_seconds(duration)}")
		if start >= end:
			raise ValidationError(start_field, f"must be less than {end_field}")

	#============================
	def _check_fade_sum(self, fade_in: Decimal, fade_out: Decimal, span: Decimal,
		tempo: Decimal, field: str) -> None:
		output_span = utils.snap_time(span / tempo)
		if fade_in + fade_out > output_span:
			raise ValidationError(field,
				"fadeInSeconds + fadeOutSeconds exceeds the segment duration "
				f"of {utils.format_seconds(output_span)} seconds")

	#============================
	def _parse_regions(self, raw_regions, duration: Decimal, defaults: dict) -> list:
		if raw_regions is None:
			return []
		if not isinstance(raw_regions, list):
			raise ValidationError('regions', "must be a list")
		regions = []
		for index, raw_region in enumerate(raw_regions):
			regions.append(self._parse_region(raw_region, index, duration, defaults))
		return regions

	#============================
	def _parse_region(self, raw_region, index: int, duration: Decimal,
		defaults: dict) -> RegionPlan:
		prefix = f"regions[{index}]."
		if not isinstance(raw_region, dict):
			raise ValidationError(f"regions[{index}]", "must be a mapping")
		region_id = raw_region.get('id')
		if region_id is None:
			region_id = f"region-{index + 1}"
		for key in ('start', 'end'):
			if raw_region.get(key) is None:
				raise ValidationError(prefix + key, "is required")
		start = self._coerce_time(raw_region['start'], prefix + 'start')
		end = self._coerce_time(raw_region['end'], prefix + 'end')
		self._check_range(start, end, duration, prefix + 'start', prefix + 'end')
		tempo = self._parse_bounded(raw_region, 'tempoMultiplier',
			defaults['tempoMultiplier'], TEMPO_RANGE, prefix)
		pitch = self._parse_bounded(raw_region, 'pitchSemitones',
			defaults['pitchSemitones'], PITCH_RANGE, prefix)
		volume = self._parse_bounded(raw_region, 'volumeMultiplier',
			defaults['volumeMultiplier'], VOLUME_RANGE, prefix)
		fade_in = self._parse_fade(raw_region, 'fadeInSeconds',
			defaults['fadeInSeconds'], prefix)
		fade_out = self._parse_fade(raw_region, 'fadeOutSeconds',
			defaults['fadeOutSeconds'], prefix)
		self._check_fade_sum(fade_in, fade_out, end - start, tempo,
			prefix + 'fadeOutSeconds')
		return RegionPlan(str(region_id), start, end, tempo=tempo, pitch=pitch,
			volume=volume, fade_in=fade_in, fade_out=fade_out)

	#============================
	def _parse_silence(self, raw_silence, duration: Decimal, trim_start: Decimal,
		trim_end: Decimal) -> SilenceParams:
		if raw_silence is None or raw_silence is False:
			return None
		if raw_silence is True:
			raw_silence = {}
		if not isinstance(raw_silence, dict):
			raise ValidationError('silence', "must be a mapping or boolean")
		threshold = self._coerce_number(
			raw_silence.get('thresholdDb', self.settings['silence_threshold_db']),
			'silence.thresholdDb')
		if threshold > 0:
			raise ValidationError('silence.thresholdDb', "must be 0 or negative dBFS")
		min_duration = self._coerce_number(
			raw_silence.get('minDurationSeconds', self.settings['silence_min_duration']),
			'silence.minDurationSeconds')
		if min_duration <= 0:
			raise ValidationError('silence.minDurationSeconds', "must be positive")
		region_start = self._parse_time(raw_silence, 'regionStart', trim_start, 'silence.')
		region_end = self._parse_time(raw_silence, 'regionEnd', trim_end, 'silence.')
		if region_start < trim_start or region_start > trim_end:
			raise ValidationError('silence.regionStart', "must lie within the trim range")
		if region_end < trim_start or region_end > trim_end:
			raise ValidationError('silence.regionEnd', "must lie within the trim range")
		if region_start >= region_end:
			raise ValidationError('silence.regionStart', "must be less than silence.regionEnd")
		windows = self._parse_windows(raw_silence.get('windows'), duration)
		return SilenceParams(float(threshold), min_duration, region_start,
			region_end, windows=windows)

	#============================
	def _parse_windows(self, raw_windows, duration: Decimal) -> list:
		if raw_windows is None:
			return None
		if not isinstance(raw_windows, list):
			raise ValidationError('silence.windows', "must be a list")
		windows = []
		for index, raw_window in enumerate(raw_windows):
			field = f"silence.windows[{index}]"
			if isinstance(raw_window, (list, tuple)) and len(raw_window) == 2:
				raw_window = {'start': raw_window[0], 'end': raw_window[1]}
			if not isinstance(raw_window, dict):
				raise ValidationError(field, "must be a {start, end} pair")
			if raw_window.get('start') is None or raw_window.get('end') is None:
				raise ValidationError(field, "requires start and end")
			start = self._coerce_time(raw_window['start'], field + '.start')
			end = self._coerce_time(raw_window['end'], field + '.end')
			self._check_range(start, end, duration, field + '.start', field + '.end')
			windows.append(SilenceWindow(start, end))
		return windows

	#============================
	def _check_mode_combination(self, regions: list, silence: SilenceParams,
		invert: bool) -> None:
		if len(regions) > 0 and silence is not None:
			raise ValidationError('silence', "cannot be combined with regions")
		if len(regions) > 0 and invert:
			raise ValidationError('invert', "cannot be combined with regions")
		if silence is not None and invert:
			raise ValidationError('invert', "cannot be combined with silence removal")
