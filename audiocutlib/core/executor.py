#!/usr/bin/env python3

"""
Job lifecycle and the engine subprocess driver.

One Job maps to one engine subprocess. The engine writes to a hidden partial
file beside the requested output; the partial is renamed into place only when
the engine exits cleanly, and removed on every other path.
"""

import os
import shlex
import subprocess
import threading
import time
import uuid
from collections import deque
from audiocutlib.core import utils
from audiocutlib.core import progress
from audiocutlib.core.errors import AudioCutError
from audiocutlib.core.errors import CancelledError
from audiocutlib.core.errors import ProcessingError
from audiocutlib.media import ffmpeg

#============================================

STATE_QUEUED = 'queued'
STATE_RUNNING = 'running'
STATE_COMPLETED = 'completed'
STATE_FAILED = 'failed'
STATE_CANCELLED = 'cancelled'

TERMINAL_STATES = (STATE_COMPLETED, STATE_FAILED, STATE_CANCELLED)

ALLOWED_TRANSITIONS = {
	STATE_QUEUED: (STATE_RUNNING, STATE_CANCELLED, STATE_FAILED),
	STATE_RUNNING: TERMINAL_STATES,
}

STDERR_TAIL_LINES = 40

#============================================

def new_job_id() -> str:
	return uuid.uuid4().hex[:12]

#============================================

class Job():
	def __init__(self, plan, job_id: str = None, reporter=None):
		if job_id is None:
			job_id = new_job_id()
		self.job_id = job_id
		self.plan = plan
		if reporter is None:
			reporter = progress.ProgressReporter(job_id)
		self.reporter = reporter
		self.state = STATE_QUEUED
		self.error = None
		self.result = None
		self.created = time.time()
		self._process = None
		self._cancel_event = threading.Event()
		self._lock = threading.Lock()

	#============================
	@property
	def cancel_requested(self) -> bool:
		return self._cancel_event.is_set()

	#============================
	@property
	def is_terminal(self) -> bool:
		return self.state in TERMINAL_STATES

	#============================
	def transition(self, new_state: str) -> None:
		with self._lock:
			allowed = ALLOWED_TRANSITIONS.get(self.state, ())
			if new_state not in allowed:
				raise RuntimeError(
					f"job {self.job_id}: invalid transition {self.state} -> {new_state}"
				)
			self.state = new_state

	#============================
	def attach_process(self, proc: subprocess.Popen) -> None:
		with self._lock:
			self._process = proc
		if self.cancel_requested:
			self._terminate(proc)

	#============================
	def detach_process(self) -> None:
		with self._lock:
			self._process = None

	#============================
	def cancel(self) -> bool:
		"""
		Request cancellation and terminate the live subprocess, if any.

		Returns:
			bool: False when the job had already finished.
		"""
		if self.is_terminal:
			return False
		self._cancel_event.set()
		with self._lock:
			proc = self._process
		if proc is not None:
			self._terminate(proc)
		return True

	#============================
	def _terminate(self, proc: subprocess.Popen) -> None:
		if proc.poll() is None:
			proc.terminate()

	#============================
	def to_dict(self) -> dict:
		data = {
			'jobId': self.job_id,
			'state': self.state,
			'cancelRequested': self.cancel_requested,
		}
		if self.error is not None:
			data['error'] = str(self.error)
		return data

#============================================

class JobRegistry():
	def __init__(self):
		self._jobs = {}
		self._lock = threading.Lock()

	#============================
	def add(self, job: Job) -> Job:
		with self._lock:
			if job.job_id in self._jobs:
				raise RuntimeError(f"duplicate job id: {job.job_id}")
			self._jobs[job.job_id] = job
		return job

	#============================
	def get(self, job_id: str) -> Job:
		with self._lock:
			return self._jobs.get(job_id)

	#============================
	def remove(self, job_id: str) -> Job:
		with self._lock:
			return self._jobs.pop(job_id, None)

	#============================
	def cancel(self, job_id: str) -> bool:
		job = self.get(job_id)
		if job is None:
			return False
		return job.cancel()

	#============================
	def list_jobs(self) -> list:
		with self._lock:
			return list(self._jobs.values())

	#============================
	def active_jobs(self) -> list:
		return [job for job in self.list_jobs() if not job.is_terminal]

	#============================
	def __len__(self) -> int:
		with self._lock:
			return len(self._jobs)

#============================================

class JobResult():
	def __init__(self, job_id: str, output_path: str, elapsed: float,
		report=None, command: list = None):
		self.job_id = job_id
		self.output_path = output_path
		self.elapsed = elapsed
		self.report = report
		self.command = command

	#============================
	def to_dict(self) -> dict:
		data = {
			'jobId': self.job_id,
			'outputPath': self.output_path,
			'elapsedSeconds': round(self.elapsed, 3),
		}
		if self.report is not None:
			data['verification'] = self.report.to_dict()
		return data

#============================================

def partial_output_path(output_file: str, job_id: str) -> str:
	dirname, basename = os.path.split(output_file)
	stem, ext = os.path.splitext(basename)
	return os.path.join(dirname, f".{stem}.{job_id}.partial{ext}")

#============================================

def remove_file(filepath: str) -> None:
	if filepath is not None and os.path.exists(filepath):
		os.remove(filepath)

#============================================

def _drain_stream(stream, tail: deque) -> None:
	for line in stream:
		line = line.rstrip()
		if line:
			tail.append(line)

#============================================

class ProcessingExecutor():
	"""
	Drive one engine subprocess per job and stream its progress.

	Args:
		verifier: Object with verify(plan, output_path), or None.
		command_builder: Callable with the signature of
			ffmpeg.build_render_command.
	"""
	def __init__(self, verifier=None, command_builder=None):
		self.verifier = verifier
		if command_builder is None:
			command_builder = ffmpeg.build_render_command
		self.command_builder = command_builder

	#============================
	def run(self, job: Job, graph, input_file: str, output_file: str,
		output_format: str = 'mp3', quality: str = 'medium',
		sample_rate: int = ffmpeg.DEFAULT_SAMPLE_RATE) -> JobResult:
		"""
		Render a filter graph for a job and verify the output.

		Args:
			job: Queued job.
			graph: FilterGraph for the job's plan.
			input_file: Source audio path.
			output_file: Final output path.
			output_format: Output format key.
			quality: Quality preset key.
			sample_rate: Input sample rate.

		Returns:
			JobResult: Output location and verification report.
		"""
		reporter = job.reporter
		if job.cancel_requested:
			job.transition(STATE_CANCELLED)
			reporter.cancelled("Cancelled before start")
			raise CancelledError(job.job_id)
		job.transition(STATE_RUNNING)
		reporter.initializing()
		partial_path = partial_output_path(output_file, job.job_id)
		try:
			return self._render(job, graph, input_file, output_file, partial_path,
				output_format, quality, sample_rate)
		except AudioCutError as exc:
			remove_file(partial_path)
			if not job.is_terminal:
				self._finish(job, STATE_FAILED, exc)
				reporter.error(str(exc))
			raise
		except Exception as exc:
			remove_file(partial_path)
			error = ProcessingError(f"job failed: {exc}")
			if not job.is_terminal:
				self._finish(job, STATE_FAILED, error)
				reporter.error(str(error))
			raise error from exc
		except BaseException:
			remove_file(partial_path)
			raise

	#============================
	def _render(self, job: Job, graph, input_file: str, output_file: str,
		partial_path: str, output_format: str, quality: str,
		sample_rate: int) -> JobResult:
		reporter = job.reporter
		t0 = time.time()
		out_dir = os.path.dirname(output_file)
		if out_dir:
			os.makedirs(out_dir, exist_ok=True)
		cmd = self.command_builder(graph, input_file, partial_path,
			output_format, quality, sample_rate)
		returncode, stderr_tail = self._run_engine(job, cmd,
			float(graph.output_duration), t0)
		if job.cancel_requested:
			remove_file(partial_path)
			self._finish(job, STATE_CANCELLED, CancelledError(job.job_id))
			reporter.cancelled()
			raise job.error
		if returncode != 0:
			remove_file(partial_path)
			error = ProcessingError(f"engine exited with code {returncode}",
				returncode, stderr_tail)
			self._finish(job, STATE_FAILED, error)
			reporter.error(f"Engine exited with code {returncode}")
			raise error
		if not os.path.isfile(partial_path) or os.path.getsize(partial_path) == 0:
			remove_file(partial_path)
			error = ProcessingError("engine produced no output", returncode, stderr_tail)
			self._finish(job, STATE_FAILED, error)
			reporter.error("Engine produced no output")
			raise error
		os.replace(partial_path, output_file)
		report = None
		if self.verifier is not None:
			reporter.verifying()
			try:
				report = self.verifier.verify(job.plan, output_file)
			except RuntimeError as exc:
				error = ProcessingError(f"could not verify output: {exc}")
				self._finish(job, STATE_FAILED, error)
				reporter.error("Verification probe failed")
				raise error from exc
		result = JobResult(job.job_id, output_file, time.time() - t0, report, cmd)
		job.result = result
		self._finish(job, STATE_COMPLETED, None)
		reporter.completed()
		return result

	#============================
	def _finish(self, job: Job, state: str, error) -> None:
		job.error = error
		job.transition(state)

	#============================
	def _run_engine(self, job: Job, cmd: list, total_seconds: float,
		t0: float) -> tuple:
		reporter = job.reporter
		utils.log_message(f"CMD: '{shlex.join(cmd)}'")
		try:
			proc = subprocess.Popen(cmd, stdout=subprocess.PIPE,
				stderr=subprocess.PIPE, text=True, bufsize=1)
		except OSError as exc:
			error = ProcessingError(f"could not start engine: {exc}")
			self._finish(job, STATE_FAILED, error)
			reporter.error(str(error))
			raise error from exc
		tail = deque(maxlen=STDERR_TAIL_LINES)
		stderr_thread = threading.Thread(target=_drain_stream,
			args=(proc.stderr, tail), daemon=True)
		stderr_thread.start()
		job.attach_process(proc)
		try:
			reporter.processing(progress.PROCESSING_FLOOR, "Engine started")
			done_seconds = 0.0
			# the loop ends when the engine exits or is terminated
			for line in proc.stdout:
				key, value = ffmpeg.parse_progress_line(line)
				if key == 'time':
					done_seconds = value
				elif key == 'progress' and not job.cancel_requested:
					percent = progress.scale_processing_percent(done_seconds, total_seconds)
					remaining = progress.estimate_time_remaining(time.time() - t0,
						done_seconds, total_seconds)
					reporter.processing(percent, time_remaining=remaining)
			returncode = proc.wait()
		finally:
			if proc.poll() is None:
				proc.kill()
				proc.wait()
			job.detach_process()
			stderr_thread.join()
			proc.stdout.close()
			proc.stderr.close()
		return returncode, "\n".join(tail)
