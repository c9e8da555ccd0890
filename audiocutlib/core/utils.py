#!/usr/bin/env python3

import os
import shlex
import shutil
import subprocess
import threading
import time
from decimal import Decimal
from decimal import ROUND_HALF_UP

#============================================

PRECISION_DIGITS = 6
GRID_QUANTUM = Decimal(1).scaleb(-PRECISION_DIGITS)
COMPARE_EPSILON = Decimal("0.000001")

_state_lock = threading.Lock()
_quiet_mode = False
_command_reporter = None
_command_total = None
_command_index = 0

#============================================

def set_quiet_mode(value: bool) -> None:
	global _quiet_mode
	with _state_lock:
		_quiet_mode = bool(value)

#============================================

def is_quiet_mode() -> bool:
	return _quiet_mode

#============================================

def set_command_reporter(reporter) -> None:
	global _command_reporter, _command_index
	with _state_lock:
		_command_reporter = reporter
		_command_index = 0

#============================================

def clear_command_reporter() -> None:
	global _command_reporter
	with _state_lock:
		_command_reporter = None

#============================================

def set_command_total(total) -> None:
	global _command_total
	with _state_lock:
		_command_total = total

#============================================

def command_prefix(index: int, total) -> str:
	if index is None or index <= 0:
		return ""
	if total is None or total <= 0:
		return f"[{index}]"
	return f"[{index}/{total}]"

#============================================

def log_message(text: str) -> None:
	if is_quiet_mode():
		return
	print(text)

#============================================

def _report_command(event: dict) -> None:
	reporter = _command_reporter
	if reporter is None:
		return
	reporter(event)

#============================================

def _next_command_index() -> int:
	global _command_index
	with _state_lock:
		_command_index += 1
		return _command_index

#============================================

def run_process(cmd: list, capture_output: bool = True) -> subprocess.CompletedProcess:
	"""
	Run a subprocess command and raise on a nonzero exit.

	Args:
		cmd: Command list to execute.
		capture_output: Capture stdout and stderr when True.

	Returns:
		subprocess.CompletedProcess: The completed process.
	"""
	showcmd = shlex.join(cmd)
	log_message(f"CMD: '{showcmd}'")
	index = _next_command_index()
	_report_command({'event': 'start', 'command': showcmd, 'index': index,
		'total': _command_total})
	t0 = time.time()
	proc = subprocess.run(cmd, capture_output=capture_output, text=True)
	_report_command({'event': 'end', 'command': showcmd, 'index': index,
		'returncode': proc.returncode, 'seconds': time.time() - t0})
	if proc.returncode != 0:
		stderr_text = (proc.stderr or "").strip()
		raise RuntimeError(f"command failed: {showcmd}\n{stderr_text}")
	return proc

#============================================

def check_dependency(cmd_name: str) -> None:
	if shutil.which(cmd_name) is None:
		raise RuntimeError(f"missing dependency: {cmd_name}")

#============================================

def ensure_file_exists(filepath: str) -> None:
	if not os.path.exists(filepath):
		raise RuntimeError(f"file not found: {filepath}")
	return

#============================================

def to_decimal(value) -> Decimal:
	if isinstance(value, Decimal):
		return value
	if isinstance(value, bool):
		raise RuntimeError("boolean is not a time value")
	if isinstance(value, int):
		return Decimal(value)
	if isinstance(value, float):
		return Decimal(str(value))
	if isinstance(value, str):
		return Decimal(value.strip())
	raise RuntimeError(f"cannot convert {type(value).__name__} to a decimal")

#============================================

def snap_time(value) -> Decimal:
	"""
	Snap a time value onto the precision grid.

	All components route their time arithmetic through this function so
	that values are compared on the same grid. Snapping is idempotent.

	Args:
		value: Number, numeric string, or Decimal seconds.

	Returns:
		Decimal: Value quantized to PRECISION_DIGITS decimal places.
	"""
	return to_decimal(value).quantize(GRID_QUANTUM, rounding=ROUND_HALF_UP)

#============================================

def durations_equal(first, second, epsilon: Decimal = COMPARE_EPSILON) -> bool:
	return abs(snap_time(first) - snap_time(second)) <= epsilon

#============================================

def seconds_to_float(value) -> float:
	return float(snap_time(value))

#============================================

def parse_timecode(raw_time) -> Decimal:
	if raw_time is None:
		raise RuntimeError("time value is required")
	if isinstance(raw_time, bool):
		raise RuntimeError("time values must be int, float, or timecode string")
	if isinstance(raw_time, (int, float, Decimal)):
		return snap_time(raw_time)
	if isinstance(raw_time, str):
		value = raw_time.strip()
		if ':' not in value:
			return snap_time(value)
		parts = value.split(':')
		if len(parts) > 3:
			raise RuntimeError(f"invalid timecode: {raw_time}")
		seconds = Decimal(parts.pop())
		minutes = Decimal(parts.pop())
		hours = Decimal(0)
		if len(parts) > 0:
			hours = Decimal(parts.pop())
		return snap_time(hours * Decimal(3600) + minutes * Decimal(60) + seconds)
	raise RuntimeError("time values must be int, float, or timecode string")

#============================================

def format_timestamp(seconds) -> str:
	value = snap_time(seconds)
	millis = int((value * 1000).quantize(Decimal(1), rounding=ROUND_HALF_UP))
	if millis < 0:
		millis = 0
	hours = millis // 3600000
	remainder = millis % 3600000
	minutes = remainder // 60000
	remainder = remainder % 60000
	seconds_part = remainder // 1000
	millis_part = remainder % 1000
	return f"{hours:02d}:{minutes:02d}:{seconds_part:02d}.{millis_part:03d}"

#============================================

def format_seconds(value) -> str:
	text = f"{snap_time(value):f}"
	if '.' in text:
		text = text.rstrip('0').rstrip('.')
	if text in ("", "-0"):
		text = "0"
	return text

#============================================

def make_timestamp() -> str:
	datestamp = time.strftime("%y%b%d").lower()
	uppercase = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
	hourstamp = uppercase[(time.localtime()[3]) % 26]
	minstamp = f"{time.localtime()[4]:02d}"
	secstamp = uppercase[(time.localtime()[5]) % 26]
	timestamp = datestamp + hourstamp + minstamp + secstamp
	return timestamp
