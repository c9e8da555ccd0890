#!/usr/bin/env python3

"""
Textual progress dashboard for audiocut jobs.
"""

# Standard Library
import argparse
import os
import re
import sys
import threading
import time
import traceback

script_dir = os.path.dirname(os.path.abspath(__file__))
if script_dir not in sys.path:
	sys.path.insert(0, script_dir)

# PIP3 modules
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import RichLog, Static
from rich.text import Text

# local repo modules
from audiocut_cli import load_request
from audiocutlib.core import config
from audiocutlib.core import utils
from audiocutlib.core.errors import AudioCutError
from audiocutlib.core.project import EditSession

#============================================

NORD_COLORS = {
	'background': "#2E3440",
	'foreground': "#D8DEE9",
	'dim': "#4C566A",
	'header': "#88C0D0",
	'command': "#ECEFF4",
	'flags': "#81A1C1",
	'numbers': "#B48EAD",
	'paths': "#A3BE8C",
	'strings': "#EBCB8B",
	'warning': "#D08770",
	'error': "#BF616A",
}

PROGRESS_BAR_WIDTH = 30

#============================================

def parse_args():
	"""
	Parse command-line arguments.
	"""
	parser = argparse.ArgumentParser(description="audiocut progress dashboard")
	parser.add_argument('-i', '--input', dest='input_file', required=True,
		help='input audio file')
	parser.add_argument('-r', '--request', dest='request_file',
		help='YAML or JSON edit request')
	parser.add_argument('-o', '--output', dest='output_file',
		help='output file, default is generated next to the input')
	parser.add_argument('-c', '--config', dest='config_file',
		help='audiocut config YAML')
	parser.add_argument('-d', '--debug', dest='debug_log', action='store_true',
		help='write debug log to audiocut_tui.log in the current directory')
	args = parser.parse_args()
	return args

#============================================

class AudioCutTuiApp(App):
	BINDINGS = [
		("q", "quit", "Quit"),
		("x", "cancel_job", "Cancel job"),
	]

	CSS = """
	#root {
		height: 1fr;
	}

	#top_row {
		height: 40%;
		min-height: 9;
	}

	#left_panel {
		width: 50%;
		height: 1fr;
		border: solid gray;
	}

	#right_panel {
		width: 50%;
		height: 1fr;
		border: solid gray;
	}

	#metrics_title, #job_title {
		height: 1;
		color: #88C0D0;
	}

	#metrics, #job_info {
		height: 1fr;
	}

	#footer_note {
		height: 1;
		color: #4C566A;
	}

	#log {
		height: 1fr;
		border: solid gray;
	}
	"""

	def __init__(self, input_file: str, request_file: str = None,
		output_file: str = None, config_file: str = None, debug_log: bool = False):
		super().__init__()
		self.input_file = input_file
		self.request_file = request_file
		self.output_file = output_file
		self.config_file = config_file
		self.job = None
		self.mode = None
		self.expected_duration = None
		self.stage = "waiting"
		self.percent = 0.0
		self.time_remaining = None
		self.message = ""
		self.report = None
		self.start_time = None
		self.finish_time = None
		self.error_text = None
		self.finished = False
		self.metrics_widget = None
		self.job_widget = None
		self.log_widget = None
		self.command_styles = self._build_command_styles()
		self.debug_mode = debug_log
		self.log_path = None
		self.log_lock = threading.Lock()
		if self.debug_mode:
			self.log_path = os.path.join(os.getcwd(), "audiocut_tui.log")
			self._reset_log()
			self._write_log(f"debug log: {self.log_path}")

	#============================
	def compose(self) -> ComposeResult:
		yield Static("AUDIOCUT", id="header")
		with Vertical(id="root"):
			with Horizontal(id="top_row"):
				with Vertical(id="left_panel"):
					yield Static("Progress", id="metrics_title")
					yield Static("", id="metrics")
					yield Static("Press x to cancel, q to quit", id="footer_note")
				with Vertical(id="right_panel"):
					yield Static("Job", id="job_title")
					yield Static("", id="job_info")
			yield RichLog(id="log", wrap=True, highlight=False)

	#============================
	def on_mount(self) -> None:
		self.metrics_widget = self.query_one("#metrics", Static)
		self.job_widget = self.query_one("#job_info", Static)
		self.log_widget = self.query_one(RichLog)
		self.start_time = time.time()
		self._update_job_info()
		thread = threading.Thread(target=self._run_job, daemon=True)
		thread.start()
		self.set_interval(0.5, self._update_metrics)

	#============================
	def action_cancel_job(self) -> None:
		if self.job is None or self.finished:
			return
		if self.job.cancel():
			self.log_widget.write(Text("cancel requested", style=NORD_COLORS['warning']))
			self._write_log("cancel requested")

	#============================
	def _run_job(self) -> None:
		utils.set_quiet_mode(True)
		utils.set_command_reporter(self._report_command)
		try:
			settings = config.load_settings(self.config_file)
			request = load_request(self.request_file)
			session = EditSession(self.input_file, request,
				output_file=self.output_file, settings=settings)
			self.job = session.create_job(sink=self._report_progress)
			self.output_file = session.output_file
			self.mode = session.plan.mode
			self.expected_duration = float(session.graph.output_duration)
			self.call_from_thread(self._update_job_info)
			result = session.execute(self.job)
			self.report = result.report
		except AudioCutError as exc:
			self.call_from_thread(self._set_error, str(exc), None)
		except Exception as exc:
			self.call_from_thread(self._set_error, str(exc), traceback.format_exc())
		finally:
			utils.clear_command_reporter()
			utils.set_quiet_mode(False)
			self.call_from_thread(self._finish)

	#============================
	def _report_progress(self, event) -> None:
		self.call_from_thread(self._handle_progress_event, event)

	#============================
	def _handle_progress_event(self, event) -> None:
		self.stage = event.stage
		self.percent = event.percent
		self.time_remaining = event.time_remaining
		self.message = event.message
		self._write_log(f"progress {event.stage} {event.percent:.1f}%: {event.message}")
		if event.stage != 'processing' and self.log_widget is not None:
			self.log_widget.write(
				Text(f"{event.stage}: {event.message}", style=NORD_COLORS['header'])
			)
		self._update_metrics()

	#============================
	def _report_command(self, event: dict) -> None:
		self.call_from_thread(self._handle_command_event, event)

	#============================
	def _handle_command_event(self, event: dict) -> None:
		if self.log_widget is None:
			return
		command = event.get('command', '')
		if event.get('event') == 'start':
			self.log_widget.write(self._highlight_command(command))
			self._write_log(f"start: {command}")
			return
		code = event.get('returncode', 0)
		if code != 0:
			self.log_widget.write(
				Text(f"error ({code}): {command}", style=f"bold {NORD_COLORS['error']}")
			)
		self._write_log(f"end ({code}, {event.get('seconds', 0.0):.3f}s): {command}")

	#============================
	def _set_error(self, text: str, trace_text: str = None) -> None:
		self.error_text = text
		if trace_text:
			self._write_log(trace_text)
		if self.log_widget is not None:
			self.log_widget.write(
				Text(f"error: {text}", style=f"bold {NORD_COLORS['error']}")
			)

	#============================
	def _finish(self) -> None:
		self.finished = True
		if self.start_time is not None and self.finish_time is None:
			self.finish_time = time.time() - self.start_time
		if self.log_widget is not None:
			if self.error_text is not None:
				self.log_widget.write("finished with errors")
			elif self.report is not None:
				style = NORD_COLORS['paths'] if self.report.passed else NORD_COLORS['warning']
				self.log_widget.write(Text(self.report.summary(), style=style))
				for diagnostic in self.report.diagnostics:
					self.log_widget.write(Text(f"  {diagnostic}", style=NORD_COLORS['warning']))
				self.log_widget.write(f"output: {self.output_file}")
		self._write_log("finished")
		self._update_job_info()
		self._update_metrics()

	#============================
	def _write_log(self, message: str) -> None:
		if not self.debug_mode or self.log_path is None:
			return
		timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
		with self.log_lock:
			with open(self.log_path, "a", encoding="utf-8") as handle:
				handle.write(f"[{timestamp}] {message}\n")

	#============================
	def _reset_log(self) -> None:
		with self.log_lock:
			with open(self.log_path, "w", encoding="utf-8"):
				return

	#============================
	def _status_text(self) -> str:
		if self.error_text is not None:
			return "failed"
		if self.finished:
			if self.stage == 'cancelled':
				return "cancelled"
			return "done"
		return self.stage

	#============================
	def _update_metrics(self) -> None:
		if self.metrics_widget is None:
			return
		if self.start_time is None:
			elapsed = 0.0
		elif self.finished:
			elapsed = self.finish_time or (time.time() - self.start_time)
		else:
			elapsed = time.time() - self.start_time
		status = self._status_text()
		status_style = NORD_COLORS['foreground']
		if status == "failed":
			status_style = NORD_COLORS['error']
		elif status == "done":
			status_style = NORD_COLORS['paths']
		metrics = Text()
		metrics.append("Status: ", style=NORD_COLORS['dim'])
		metrics.append(status, style=status_style)
		metrics.append("\n")
		metrics.append(self._progress_bar(self.percent), style=NORD_COLORS['header'])
		metrics.append(f" {self.percent:5.1f}%", style=NORD_COLORS['numbers'])
		metrics.append("\n")
		metrics.append("Elapsed: ", style=NORD_COLORS['dim'])
		metrics.append(self._format_duration(elapsed), style=NORD_COLORS['numbers'])
		metrics.append(" | ETA: ", style=NORD_COLORS['dim'])
		if self.time_remaining is None or self.finished:
			metrics.append("N/A", style=NORD_COLORS['dim'])
		else:
			metrics.append(self._format_duration_estimate(self.time_remaining),
				style=NORD_COLORS['numbers'])
		metrics.append("\n")
		metrics.append("Current: ", style=NORD_COLORS['dim'])
		metrics.append(self.message, style=NORD_COLORS['foreground'])
		self.metrics_widget.update(metrics)

	#============================
	def _update_job_info(self) -> None:
		if self.job_widget is None:
			return
		info = Text()
		rows = [
			("Input", self.input_file),
			("Request", self.request_file),
			("Output", self.output_file),
			("Mode", self.mode),
		]
		for label, value in rows:
			info.append(f"{label}: ", style=NORD_COLORS['dim'])
			if value is None:
				info.append("N/A", style=NORD_COLORS['dim'])
			else:
				info.append(str(value), style=NORD_COLORS['paths'])
			info.append("\n")
		info.append("Expected: ", style=NORD_COLORS['dim'])
		if self.expected_duration is None:
			info.append("N/A", style=NORD_COLORS['dim'])
		else:
			info.append(self._format_duration(self.expected_duration),
				style=NORD_COLORS['numbers'])
		if self.report is not None:
			info.append("\n")
			info.append("Verified: ", style=NORD_COLORS['dim'])
			style = NORD_COLORS['paths'] if self.report.passed else NORD_COLORS['warning']
			info.append(
				f"{self.report.status} (delta {float(self.report.duration_delta):.3f}s)",
				style=style,
			)
		self.job_widget.update(info)

	#============================
	def _build_command_styles(self) -> list:
		return [
			(re.compile(r"\batempo\b|\bafade\b|\basetrate\b|\bvolume\b|\bconcat\b"),
				NORD_COLORS['foreground']),
			(re.compile(r"--?[A-Za-z0-9][A-Za-z0-9_:-]*"), NORD_COLORS['flags']),
			(re.compile(r"\b\d+(?:\.\d+)?\b"), NORD_COLORS['numbers']),
			(re.compile(r"'[^']*'|\"[^\"]*\""), NORD_COLORS['strings']),
			(re.compile(r"(?:/|~|\./|\.\./)[^\s'\"`]+"), NORD_COLORS['paths']),
		]

	#============================
	def _highlight_command(self, command: str):
		if not command:
			return ""
		text = Text(command, style=f"bold {NORD_COLORS['command']}")
		for pattern, style in self.command_styles:
			for match in pattern.finditer(command):
				text.stylize(style, match.start(), match.end())
		return text

	#============================
	def _progress_bar(self, percent: float, width: int = PROGRESS_BAR_WIDTH) -> str:
		percent = max(0.0, min(100.0, percent))
		filled = int(round(width * percent / 100.0))
		return "[" + "#" * filled + "-" * (width - filled) + "]"

	#============================
	def _format_duration(self, seconds: float) -> str:
		if seconds < 60:
			return f"{seconds:.1f}s"
		minutes = int(seconds // 60)
		seconds_text = f"{seconds - minutes * 60:04.1f}"
		if minutes < 60:
			return f"{minutes}m {seconds_text}s"
		hours = minutes // 60
		return f"{hours}h {minutes - hours * 60:02d}m {seconds_text}s"

	#============================
	def _format_duration_estimate(self, seconds: float) -> str:
		rounded = int(seconds)
		if seconds > rounded:
			rounded += 1
		if rounded < 60:
			return f"{rounded:d}s"
		minutes = rounded // 60
		remaining = rounded - minutes * 60
		if minutes < 60:
			return f"{minutes}m {remaining:02d}s"
		hours = minutes // 60
		return f"{hours}h {minutes - hours * 60:02d}m {remaining:02d}s"

#============================================

def main():
	args = parse_args()
	app = AudioCutTuiApp(args.input_file,
		request_file=args.request_file,
		output_file=args.output_file,
		config_file=args.config_file,
		debug_log=args.debug_log)
	app.run()

#============================================

if __name__ == '__main__':
	main()
