#!/usr/bin/env python3

"""
Configuration loading for audiocut.

Config files are YAML mappings marked with `audiocut: 1`. Missing keys fall
back to default_config(), and build_settings() flattens the result into the
settings dict consumed by the rest of the library.
"""

# Standard Library
import os

# PIP3 modules
import yaml

#============================================

OUTPUT_FORMATS = ('mp3', 'wav', 'aac', 'ogg', 'flac', 'm4a', 'm4r')
QUALITY_LEVELS = ('low', 'medium', 'high')

QUALITY_PRESETS = {
	'low': {
		'mp3': {'codec': 'libmp3lame', 'bitrate': '128k'},
		'wav': {'codec': 'pcm_s16le', 'bitrate': None},
		'aac': {'codec': 'aac', 'bitrate': '128k'},
		'ogg': {'codec': 'libvorbis', 'bitrate': '128k'},
		'flac': {'codec': 'flac', 'bitrate': None},
		'm4a': {'codec': 'aac', 'bitrate': '128k'},
		'm4r': {'codec': 'aac', 'bitrate': '128k'},
	},
	'medium': {
		'mp3': {'codec': 'libmp3lame', 'bitrate': '192k'},
		'wav': {'codec': 'pcm_s24le', 'bitrate': None},
		'aac': {'codec': 'aac', 'bitrate': '192k'},
		'ogg': {'codec': 'libvorbis', 'bitrate': '192k'},
		'flac': {'codec': 'flac', 'bitrate': None},
		'm4a': {'codec': 'aac', 'bitrate': '192k'},
		'm4r': {'codec': 'aac', 'bitrate': '192k'},
	},
	'high': {
		'mp3': {'codec': 'libmp3lame', 'bitrate': '320k'},
		'wav': {'codec': 'pcm_s32le', 'bitrate': None},
		'aac': {'codec': 'aac', 'bitrate': '256k'},
		'ogg': {'codec': 'libvorbis', 'bitrate': '256k'},
		'flac': {'codec': 'flac', 'bitrate': None},
		'm4a': {'codec': 'aac', 'bitrate': '256k'},
		'm4r': {'codec': 'aac', 'bitrate': '256k'},
	},
}

# m4r is an m4a container with a ringtone extension
CONTAINER_FORMATS = {
	'm4a': 'ipod',
	'm4r': 'ipod',
	'aac': 'adts',
}

LEGACY_TOLERANCE = 0.1

#============================================

def default_config() -> dict:
	"""
	Build the default config dictionary.

	Returns:
		dict: Default configuration values.
	"""
	return {
		'audiocut': 1,
		'settings': {
			'segments': {
				'merge_epsilon': 0.01,
				'min_segment_seconds': 0.0001,
			},
			'verification': {
				'tolerance': 0.01,
				'max_gap_seconds': 60.0,
			},
			'limits': {
				'max_fade_seconds': 30.0,
				'max_source_seconds': 3600.0,
			},
			'silence': {
				'threshold_db': -40.0,
				'min_duration': 0.5,
			},
			'output': {
				'format': 'mp3',
				'quality': 'medium',
			},
			'cleanup': {
				'enabled': True,
				'interval_seconds': 300.0,
				'temp_ttl': 3600.0,
				'processed_ttl': 86400.0,
				'upload_ttl': 7200.0,
				'directories': {},
			},
		},
	}

#============================================

def default_config_path() -> str:
	return os.path.join(os.getcwd(), "audiocut.config.yaml")

#============================================

def write_config_file(config_path: str, config: dict) -> None:
	"""
	Write a config file to disk.

	Args:
		config_path: Output file path.
		config: Config dictionary.
	"""
	text = yaml.safe_dump(config, sort_keys=False)
	os.makedirs(os.path.dirname(config_path) or '.', exist_ok=True)
	with open(config_path, 'w', encoding='utf-8') as handle:
		handle.write(text)
	return

#============================================

def load_config(config_path: str) -> dict:
	"""
	Load a config file from disk.

	Args:
		config_path: Config file path.

	Returns:
		dict: Parsed config dictionary.
	"""
	with open(config_path, 'r', encoding='utf-8') as handle:
		data = yaml.safe_load(handle)
	if not isinstance(data, dict):
		raise RuntimeError("config file must be a mapping")
	if data.get('audiocut') != 1:
		raise RuntimeError("config file must set audiocut: 1")
	return data

#============================================

def coerce_bool(value, config_path: str, key_path: str) -> bool:
	if isinstance(value, bool):
		return value
	if isinstance(value, int):
		return bool(value)
	if isinstance(value, str):
		normalized = value.strip().lower()
		if normalized in ("true", "yes", "1", "on"):
			return True
		if normalized in ("false", "no", "0", "off"):
			return False
	raise RuntimeError(f"config {config_path}: {key_path} must be a boolean")

#============================================

def coerce_float(value, config_path: str, key_path: str) -> float:
	if isinstance(value, bool):
		raise RuntimeError(f"config {config_path}: {key_path} must be a number")
	if isinstance(value, (int, float)):
		return float(value)
	if isinstance(value, str):
		try:
			return float(value)
		except ValueError:
			pass
	raise RuntimeError(f"config {config_path}: {key_path} must be a number")

#============================================

def _section(overrides: dict, name: str, config_path: str) -> dict:
	section = overrides.get(name, {})
	if section is None:
		return {}
	if not isinstance(section, dict):
		raise RuntimeError(f"config {config_path}: settings.{name} must be a mapping")
	return section

#============================================

def build_settings(config: dict = None, config_path: str = "<defaults>") -> dict:
	"""
	Normalize settings with defaults.

	Args:
		config: Raw config dictionary, or None for pure defaults.
		config_path: Config file path used in error messages.

	Returns:
		dict: Flat settings dictionary.
	"""
	defaults = default_config()['settings']
	overrides = {}
	if isinstance(config, dict):
		overrides = config.get('settings', {}) or {}
	if not isinstance(overrides, dict):
		raise RuntimeError(f"config {config_path}: settings must be a mapping")
	merged = {}
	for name, default_section in defaults.items():
		section = dict(default_section)
		section.update(_section(overrides, name, config_path))
		merged[name] = section
	segments = merged['segments']
	verification = merged['verification']
	limits = merged['limits']
	silence = merged['silence']
	output = merged['output']
	cleanup = merged['cleanup']
	settings = {
		'merge_epsilon': coerce_float(segments['merge_epsilon'], config_path,
			'settings.segments.merge_epsilon'),
		'min_segment_seconds': coerce_float(segments['min_segment_seconds'],
			config_path, 'settings.segments.min_segment_seconds'),
		'tolerance': coerce_float(verification['tolerance'], config_path,
			'settings.verification.tolerance'),
		'max_gap_seconds': coerce_float(verification['max_gap_seconds'],
			config_path, 'settings.verification.max_gap_seconds'),
		'max_fade_seconds': coerce_float(limits['max_fade_seconds'], config_path,
			'settings.limits.max_fade_seconds'),
		'max_source_seconds': coerce_float(limits['max_source_seconds'],
			config_path, 'settings.limits.max_source_seconds'),
		'silence_threshold_db': coerce_float(silence['threshold_db'], config_path,
			'settings.silence.threshold_db'),
		'silence_min_duration': coerce_float(silence['min_duration'], config_path,
			'settings.silence.min_duration'),
		'output_format': str(output['format']).lower(),
		'output_quality': str(output['quality']).lower(),
		'cleanup_enabled': coerce_bool(cleanup['enabled'], config_path,
			'settings.cleanup.enabled'),
		'cleanup_interval': coerce_float(cleanup['interval_seconds'], config_path,
			'settings.cleanup.interval_seconds'),
		'cleanup_ttls': {
			'temp': coerce_float(cleanup['temp_ttl'], config_path,
				'settings.cleanup.temp_ttl'),
			'processed': coerce_float(cleanup['processed_ttl'], config_path,
				'settings.cleanup.processed_ttl'),
			'upload': coerce_float(cleanup['upload_ttl'], config_path,
				'settings.cleanup.upload_ttl'),
		},
		'cleanup_directories': dict(cleanup.get('directories') or {}),
	}
	validate_settings(settings, config_path)
	return settings

#============================================

def validate_settings(settings: dict, config_path: str) -> None:
	if settings['merge_epsilon'] < 0:
		raise RuntimeError(f"config {config_path}: merge_epsilon must be >= 0")
	if settings['min_segment_seconds'] < 0:
		raise RuntimeError(f"config {config_path}: min_segment_seconds must be >= 0")
	if settings['tolerance'] <= 0:
		raise RuntimeError(f"config {config_path}: tolerance must be positive")
	if settings['max_gap_seconds'] <= 0:
		raise RuntimeError(f"config {config_path}: max_gap_seconds must be positive")
	if settings['silence_threshold_db'] > 0:
		raise RuntimeError(f"config {config_path}: threshold must be 0 or negative dBFS")
	if settings['silence_min_duration'] <= 0:
		raise RuntimeError(f"config {config_path}: silence min_duration must be positive")
	if settings['output_format'] not in OUTPUT_FORMATS:
		raise RuntimeError(f"config {config_path}: unsupported output format")
	if settings['output_quality'] not in QUALITY_LEVELS:
		raise RuntimeError(f"config {config_path}: unsupported output quality")
	if settings['cleanup_interval'] <= 0:
		raise RuntimeError(f"config {config_path}: cleanup interval must be positive")
	for role, ttl in settings['cleanup_ttls'].items():
		if ttl <= 0:
			raise RuntimeError(f"config {config_path}: cleanup {role} ttl must be positive")
	for role in settings['cleanup_directories']:
		if role not in settings['cleanup_ttls']:
			raise RuntimeError(f"config {config_path}: unknown cleanup directory role {role}")

#============================================

def load_settings(config_path: str = None) -> dict:
	if config_path is None:
		return build_settings(None)
	config = load_config(config_path)
	return build_settings(config, config_path)
