#!/usr/bin/env python3

"""
Unit tests for ffmpeg command construction and log parsing.
"""

# Standard Library
import os
import sys
from decimal import Decimal

import pytest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

from audiocutlib.core import filters
from audiocutlib.core.plan import EditPlan
from audiocutlib.core.plan import RegionPlan
from audiocutlib.core.plan import SilenceWindow
from audiocutlib.media import ffmpeg

#============================================

SILENCEDETECT_LOG = """
[silencedetect @ 0x55d1c8] silence_start: 1.50204
[silencedetect @ 0x55d1c8] silence_end: 3.25 | silence_duration: 1.74796
size=N/A time=00:00:10.00 bitrate=N/A speed= 512x
[silencedetect @ 0x55d1c8] silence_start: 8.4
"""

#============================================

def test_stage_rendering() -> None:
	assert ffmpeg.stage_to_filters(filters.FilterStage('tempo', Decimal('1.5')), 44100) == [
		"atempo=1.5"]
	assert ffmpeg.stage_to_filters(filters.FilterStage('volume', Decimal('0.8')), 44100) == [
		"volume=0.8"]
	fade = filters.FilterStage('fade', {'direction': 'out',
		'startSeconds': Decimal('3'), 'durationSeconds': Decimal('2.5')})
	assert ffmpeg.stage_to_filters(fade, 44100) == ["afade=t=out:st=3:d=2.5"]

#============================================

def test_pitch_keeps_duration() -> None:
	stage = filters.FilterStage('pitch', Decimal('12'))
	assert ffmpeg.stage_to_filters(stage, 44100) == [
		"asetrate=88200", "aresample=44100", "atempo=0.5"]
	down = ffmpeg.stage_to_filters(filters.FilterStage('pitch', Decimal('-24')), 48000)
	assert down == ["asetrate=12000", "aresample=48000", "atempo=2", "atempo=2"]

#============================================

def test_unknown_stage_raises() -> None:
	with pytest.raises(RuntimeError):
		ffmpeg.stage_to_filters(filters.FilterStage('reverb', 1), 44100)

#============================================

def test_single_span_command() -> None:
	graph = filters.FilterGraphBuilder().build(EditPlan(60, 10, 15, tempo=3))
	cmd = ffmpeg.build_render_command(graph, "in.mp3", "out.mp3")
	assert cmd[0] == "ffmpeg"
	assert cmd[cmd.index("-ss") + 1] == "10"
	assert cmd[cmd.index("-t") + 1] == "5"
	assert cmd[cmd.index("-af") + 1] == "atempo=2,atempo=1.5"
	assert cmd[cmd.index("-c:a") + 1] == "libmp3lame"
	assert cmd[cmd.index("-b:a") + 1] == "192k"
	assert cmd[cmd.index("-progress") + 1] == "pipe:1"
	assert cmd[-1] == "out.mp3"
	assert "-filter_complex" not in cmd

#============================================

def test_multi_span_command() -> None:
	regions = [RegionPlan('a', 0, 5), RegionPlan('b', 20, 30, volume='1.5')]
	graph = filters.FilterGraphBuilder().build(EditPlan(60, 0, 60, regions=regions))
	cmd = ffmpeg.build_render_command(graph, "in.wav", "out.flac", 'flac', 'high')
	complex_text = cmd[cmd.index("-filter_complex") + 1]
	assert complex_text == (
		"[0:a]atrim=start=0:end=5,asetpts=PTS-STARTPTS[s0];"
		"[0:a]atrim=start=20:end=30,asetpts=PTS-STARTPTS,volume=1.5[s1];"
		"[s0][s1]concat=n=2:v=0:a=1[out]"
	)
	assert cmd[cmd.index("-map") + 1] == "[out]"
	assert "-b:a" not in cmd
	assert "-ss" not in cmd

#============================================

def test_post_chain_after_concat() -> None:
	graph = filters.FilterGraphBuilder().build(EditPlan(60, 10, 20, invert=True,
		fade_in=2))
	text = ffmpeg.build_filter_complex(graph, 44100)
	assert text.endswith("concat=n=2:v=0:a=1[cat];[cat]afade=t=in:st=0:d=2[out]")

#============================================

def test_encoder_args_for_ringtone() -> None:
	assert ffmpeg.encoder_args('m4r', 'low') == [
		"-c:a", "aac", "-b:a", "128k", "-f", "ipod"]
	with pytest.raises(RuntimeError):
		ffmpeg.encoder_args('opus', 'low')

#============================================

def test_parse_progress_lines() -> None:
	assert ffmpeg.parse_progress_line("out_time_us=2500000\n") == ('time', 2.5)
	assert ffmpeg.parse_progress_line("out_time_ms=1000000") == ('time', 1.0)
	assert ffmpeg.parse_progress_line("out_time=00:01:02.500000") == ('time', 62.5)
	assert ffmpeg.parse_progress_line("progress=end") == ('progress', 'end')
	assert ffmpeg.parse_progress_line("out_time_us=N/A") == (None, None)
	assert ffmpeg.parse_progress_line("bitrate=128.0kbits/s") == (None, None)
	assert ffmpeg.parse_progress_line("garbage") == (None, None)

#============================================

def test_parse_silencedetect_closes_open_window() -> None:
	windows = ffmpeg.parse_silencedetect(SILENCEDETECT_LOG, '10', '22')
	assert windows == [
		SilenceWindow('11.50204', '13.25'),
		SilenceWindow('18.4', '22'),
	]

#============================================

def test_parse_silencedetect_exponent_times() -> None:
	log = (
		"[silencedetect @ 0x1] silence_start: 5e-05\n"
		"[silencedetect @ 0x1] silence_end: 2.5 | silence_duration: 2.49995\n"
	)
	windows = ffmpeg.parse_silencedetect(log, 0, 10)
	assert windows == [SilenceWindow('0.00005', '2.5')]

#============================================

def test_silencedetect_command() -> None:
	cmd = ffmpeg.build_silencedetect_command("in.mp3", -35.0, Decimal('0.5'), 2, 12)
	assert cmd[cmd.index("-af") + 1] == "silencedetect=n=-35dB:d=0.5"
	assert cmd[cmd.index("-t") + 1] == "10"
	assert cmd[-3:] == ["-f", "null", "-"]

#============================================

def test_generate_output_filename() -> None:
	name = ffmpeg.generate_output_filename("/music/song.final.mp3", 'silence', 'wav',
		timestamp="26oct19K05B")
	assert name == "song.final_silence_26oct19K05B.wav"
