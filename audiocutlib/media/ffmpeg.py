#!/usr/bin/env python3

import os
import re
import json
from decimal import Decimal
from audiocutlib.core import utils
from audiocutlib.core import config
from audiocutlib.core import filters
from audiocutlib.core.plan import SilenceWindow

#============================================

DEFAULT_SAMPLE_RATE = 44100

SILENCE_START_RE = re.compile(r"silence_start:\s*(-?[0-9]+(?:\.[0-9]+)?(?:[eE][-+]?[0-9]+)?)")
SILENCE_END_RE = re.compile(r"silence_end:\s*(-?[0-9]+(?:\.[0-9]+)?(?:[eE][-+]?[0-9]+)?)")

#============================================

def format_number(value) -> str:
	return utils.format_seconds(value)

#============================================

def pitch_ratio(semitones, sample_rate: int) -> tuple:
	"""
	Return the resampled rate and the exact ratio it realizes.
	"""
	ratio = 2.0 ** (float(semitones) / 12.0)
	new_rate = int(round(sample_rate * ratio))
	return new_rate, Decimal(new_rate) / Decimal(sample_rate)

#============================================

def stage_to_filters(stage: filters.FilterStage, sample_rate: int) -> list:
	"""
	Render one FilterStage as ffmpeg audio filter strings.

	Args:
		stage: Stage to render.
		sample_rate: Input sample rate, used by the pitch stage.

	Returns:
		list: Filter strings in order.
	"""
	if stage.kind == filters.STAGE_TEMPO:
		return [f"atempo={format_number(stage.params)}"]
	if stage.kind == filters.STAGE_VOLUME:
		return [f"volume={format_number(stage.params)}"]
	if stage.kind == filters.STAGE_FADE:
		params = stage.params
		return [
			f"afade=t={params['direction']}"
			f":st={format_number(params['startSeconds'])}"
			f":d={format_number(params['durationSeconds'])}"
		]
	if stage.kind == filters.STAGE_PITCH:
		new_rate, realized = pitch_ratio(stage.params, sample_rate)
		# asetrate shifts pitch and speed together; atempo restores the duration
		result = [f"asetrate={new_rate}", f"aresample={sample_rate}"]
		for tempo_stage in filters.build_tempo_chain(Decimal(1) / realized):
			result.extend(stage_to_filters(tempo_stage, sample_rate))
		return result
	raise RuntimeError(f"unknown filter stage kind: {stage.kind}")

#============================================

def stages_to_chain(stages: list, sample_rate: int) -> str:
	parts = []
	for stage in stages:
		parts.extend(stage_to_filters(stage, sample_rate))
	return ",".join(parts)

#============================================

def build_filter_complex(graph: filters.FilterGraph, sample_rate: int) -> str:
	"""
	Build a -filter_complex string that trims, processes and concatenates spans.

	Args:
		graph: Multi-span filter graph.
		sample_rate: Input sample rate.

	Returns:
		str: Filter graph text whose final pad is labeled [out].
	"""
	parts = []
	labels = ""
	for index, source in enumerate(graph.sources):
		chain = (
			f"[0:a]atrim=start={format_number(source.start)}"
			f":end={format_number(source.end)},asetpts=PTS-STARTPTS"
		)
		span_chain = stages_to_chain(source.stages, sample_rate)
		if span_chain:
			chain += "," + span_chain
		parts.append(f"{chain}[s{index}]")
		labels += f"[s{index}]"
	post_chain = stages_to_chain(graph.stages, sample_rate)
	count = len(graph.sources)
	if post_chain:
		parts.append(f"{labels}concat=n={count}:v=0:a=1[cat]")
		parts.append(f"[cat]{post_chain}[out]")
	else:
		parts.append(f"{labels}concat=n={count}:v=0:a=1[out]")
	return ";".join(parts)

#============================================

def encoder_args(output_format: str, quality: str) -> list:
	if output_format not in config.OUTPUT_FORMATS:
		raise RuntimeError(f"unsupported output format: {output_format}")
	if quality not in config.QUALITY_LEVELS:
		raise RuntimeError(f"unsupported output quality: {quality}")
	preset = config.QUALITY_PRESETS[quality][output_format]
	args = ["-c:a", preset['codec']]
	if preset['bitrate'] is not None:
		args += ["-b:a", preset['bitrate']]
	muxer = config.CONTAINER_FORMATS.get(output_format, output_format)
	args += ["-f", muxer]
	return args

#============================================

def build_render_command(graph: filters.FilterGraph, input_file: str,
	output_file: str, output_format: str = 'mp3', quality: str = 'medium',
	sample_rate: int = DEFAULT_SAMPLE_RATE) -> list:
	"""
	Build the ffmpeg command that renders a filter graph.

	Progress is written as key=value lines to stdout.

	Args:
		graph: Filter graph from FilterGraphBuilder.
		input_file: Source audio path.
		output_file: Path ffmpeg writes to.
		output_format: Output format key.
		quality: Quality preset key.
		sample_rate: Input sample rate.

	Returns:
		list: Command list.
	"""
	cmd = ["ffmpeg", "-hide_banner", "-nostdin", "-y"]
	if graph.is_single_span:
		source = graph.sources[0]
		cmd += ["-ss", format_number(source.start), "-t", format_number(source.duration)]
		cmd += ["-i", input_file, "-vn", "-map", "0:a:0"]
		chain = stages_to_chain(source.stages + graph.stages, sample_rate)
		if chain:
			cmd += ["-af", chain]
	else:
		cmd += ["-i", input_file, "-vn"]
		cmd += ["-filter_complex", build_filter_complex(graph, sample_rate)]
		cmd += ["-map", "[out]"]
	cmd += encoder_args(output_format, quality)
	cmd += ["-progress", "pipe:1", "-nostats", output_file]
	return cmd

#============================================

def parse_progress_line(line: str) -> tuple:
	"""
	Parse one -progress key=value line.

	Returns:
		tuple: ('time', seconds) for output time lines, ('progress', state)
		for progress lines, or (None, None) otherwise.
	"""
	text = line.strip()
	if '=' not in text:
		return (None, None)
	key, value = text.split('=', 1)
	value = value.strip()
	if key in ('out_time_us', 'out_time_ms'):
		# ffmpeg reports microseconds under both keys
		try:
			return ('time', int(value) / 1000000.0)
		except ValueError:
			return (None, None)
	if key == 'out_time':
		parts = value.split(':')
		if len(parts) != 3:
			return (None, None)
		try:
			seconds = int(parts[0]) * 3600 + int(parts[1]) * 60 + float(parts[2])
		except ValueError:
			return (None, None)
		return ('time', seconds)
	if key == 'progress':
		return ('progress', value)
	return (None, None)

#============================================

def probe_audio(input_file: str) -> dict:
	"""
	Probe an audio file with ffprobe.

	Args:
		input_file: Media file path.

	Returns:
		dict: duration, sample_rate, channels, codec, format_name, bit_rate.
	"""
	cmd = [
		"ffprobe", "-v", "error",
		"-select_streams", "a:0",
		"-show_entries",
		"stream=sample_rate,channels,codec_name:format=duration,format_name,bit_rate",
		"-of", "json",
		input_file,
	]
	proc = utils.run_process(cmd, capture_output=True)
	data = json.loads(proc.stdout)
	streams = data.get('streams', [])
	if len(streams) == 0:
		raise RuntimeError(f"no audio stream found in {input_file}")
	stream = streams[0]
	format_data = data.get('format', {})
	duration = format_data.get('duration')
	if duration is None:
		raise RuntimeError(f"ffprobe did not return a duration for {input_file}")
	sample_rate = int(stream.get('sample_rate', 0))
	if sample_rate <= 0:
		raise RuntimeError("invalid audio sample rate from ffprobe")
	bit_rate = format_data.get('bit_rate')
	return {
		'duration': utils.snap_time(duration),
		'sample_rate': sample_rate,
		'channels': int(stream.get('channels', 0)),
		'codec': stream.get('codec_name'),
		'format_name': format_data.get('format_name'),
		'bit_rate': int(bit_rate) if bit_rate else None,
	}

#============================================

def probe_duration(media_file: str) -> Decimal:
	cmd = [
		"ffprobe", "-v", "error",
		"-show_entries", "format=duration",
		"-of", "default=noprint_wrappers=1:nokey=1",
		media_file,
	]
	proc = utils.run_process(cmd, capture_output=True)
	text = (proc.stdout or "").strip()
	if not text:
		raise RuntimeError(f"ffprobe did not return a duration for {media_file}")
	try:
		return utils.snap_time(text)
	except ArithmeticError as exc:
		raise RuntimeError(f"ffprobe returned a non-numeric duration: {text}") from exc

#============================================

def build_silencedetect_command(input_file: str, threshold_db: float,
	min_duration, start, end) -> list:
	start = utils.snap_time(start)
	end = utils.snap_time(end)
	return [
		"ffmpeg", "-hide_banner", "-nostdin",
		"-ss", format_number(start), "-t", format_number(end - start),
		"-i", input_file, "-vn",
		"-af", f"silencedetect=n={threshold_db:g}dB:d={format_number(min_duration)}",
		"-f", "null", "-",
	]

#============================================

def parse_silencedetect(stderr_text: str, offset, scan_end) -> list:
	"""
	Parse silencedetect log lines into silence windows.

	Times in the log are relative to the scan start, so offset is added back.
	A silence still open at the end of the log is closed at scan_end.

	Args:
		stderr_text: ffmpeg stderr text.
		offset: Scan start in source seconds.
		scan_end: Scan end in source seconds.

	Returns:
		list: SilenceWindow values in log order.
	"""
	offset = utils.snap_time(offset)
	scan_end = utils.snap_time(scan_end)
	windows = []
	open_start = None
	for line in stderr_text.splitlines():
		match = SILENCE_START_RE.search(line)
		if match:
			open_start = max(Decimal(0), utils.snap_time(match.group(1))) + offset
			continue
		match = SILENCE_END_RE.search(line)
		if match and open_start is not None:
			end = min(utils.snap_time(match.group(1)) + offset, scan_end)
			if end > open_start:
				windows.append(SilenceWindow(open_start, end))
			open_start = None
	if open_start is not None and scan_end > open_start:
		windows.append(SilenceWindow(open_start, scan_end))
	return windows

#============================================

def detect_silence(input_file: str, threshold_db: float, min_duration,
	start, end) -> list:
	"""
	Run a silencedetect pass over [start, end) of the input.
	"""
	cmd = build_silencedetect_command(input_file, threshold_db, min_duration,
		start, end)
	proc = utils.run_process(cmd, capture_output=True)
	windows = parse_silencedetect(proc.stderr or "", start, end)
	utils.log_message(f"silencedetect found {len(windows)} windows")
	return windows

#============================================

def generate_output_filename(input_file: str, suffix: str = 'cut',
	output_format: str = 'mp3', timestamp: str = None) -> str:
	if timestamp is None:
		timestamp = utils.make_timestamp()
	base_name = os.path.splitext(os.path.basename(input_file))[0]
	return f"{base_name}_{suffix}_{timestamp}.{output_format}"
