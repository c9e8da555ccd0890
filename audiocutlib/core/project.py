#!/usr/bin/env python3

import os
import threading
from audiocutlib.core import config
from audiocutlib.core import utils
from audiocutlib.core import plan as plan_module
from audiocutlib.core import segments
from audiocutlib.core.errors import AudioCutError
from audiocutlib.core.errors import ProcessingError
from audiocutlib.core.executor import Job
from audiocutlib.core.executor import JobRegistry
from audiocutlib.core.executor import ProcessingExecutor
from audiocutlib.core.executor import STATE_FAILED
from audiocutlib.core.executor import new_job_id
from audiocutlib.core.filters import FilterGraphBuilder
from audiocutlib.core.normalizer import RequestNormalizer
from audiocutlib.core.progress import ProgressReporter
from audiocutlib.core.sweeper import TempSweeper
from audiocutlib.core.verifier import OutputVerifier
from audiocutlib.media import ffmpeg

#============================================

class EditSession():
	"""
	One edit request against one input file.

	prepare() validates the request, resolves silence into keep segments and
	builds the filter graph without running the engine. execute() renders and
	verifies the output for a job.
	"""
	def __init__(self, input_file: str, request: dict, output_file: str = None,
		settings: dict = None, probe=None, detector=None, duration_probe=None,
		command_builder=None):
		if settings is None:
			settings = config.build_settings(None)
		self.input_file = input_file
		self.request = dict(request or {})
		self.settings = settings
		self.output_file = output_file
		self.probe = probe or ffmpeg.probe_audio
		self.detector = detector or ffmpeg.detect_silence
		self.normalizer = RequestNormalizer(settings)
		self.algebra = segments.SegmentAlgebra.from_settings(settings)
		self.builder = FilterGraphBuilder()
		self.verifier = OutputVerifier.from_settings(settings, probe=duration_probe)
		self.executor = ProcessingExecutor(self.verifier, command_builder)
		self.audio_info = None
		self.plan = None
		self.segment_result = None
		self.graph = None
		self.sample_rate = ffmpeg.DEFAULT_SAMPLE_RATE

	#============================
	def prepare(self):
		if self.graph is not None:
			return self.graph
		source_duration = None
		if self.request.get('sourceDurationSeconds') is None:
			source_duration = self._audio_info()['duration']
		edit_plan = self.normalizer.normalize(self.request, source_duration)
		if edit_plan.mode == plan_module.MODE_SILENCE:
			edit_plan = self._resolve_silence(edit_plan)
		graph = self.builder.build(edit_plan)
		self.sample_rate = self._resolve_sample_rate(edit_plan)
		self.plan = edit_plan
		self.graph = graph
		if self.output_file is None:
			self.output_file = self.default_output_path()
		return self.graph

	#============================
	def _audio_info(self) -> dict:
		if self.audio_info is None:
			utils.ensure_file_exists(self.input_file)
			self.audio_info = self.probe(self.input_file)
		return self.audio_info

	#============================
	def _resolve_silence(self, edit_plan):
		silence = edit_plan.silence
		windows = silence.windows
		if windows is None:
			utils.ensure_file_exists(self.input_file)
			windows = self.detector(self.input_file, silence.threshold_db,
				silence.min_duration, silence.region_start, silence.region_end)
		result = self.algebra.compute(windows, silence.region_start, silence.region_end)
		self.segment_result = result
		keep = segments.attach_outer_material(result.keep_segments,
			edit_plan.trim_start, edit_plan.trim_end,
			silence.region_start, silence.region_end)
		utils.log_message(
			f"silence: {len(result.silences)} windows, "
			f"{utils.format_seconds(result.silence_total)}s removed, "
			f"{len(keep)} keep segments"
		)
		return edit_plan.with_segments(keep, result.silences)

	#============================
	def default_output_path(self) -> str:
		suffix = self.plan.mode if self.plan is not None else 'cut'
		output_format = self.plan.output_format if self.plan is not None \
			else self.settings['output_format']
		filename = ffmpeg.generate_output_filename(self.input_file, suffix,
			output_format)
		return os.path.join(os.path.dirname(os.path.abspath(self.input_file)), filename)

	#============================
	def create_job(self, sink=None, job_id: str = None) -> Job:
		self.prepare()
		if job_id is None:
			job_id = new_job_id()
		return Job(self.plan, job_id, ProgressReporter(job_id, sink))

	#============================
	def _resolve_sample_rate(self, edit_plan) -> int:
		uses_pitch = edit_plan.pitch != 0 \
			or any(region.pitch != 0 for region in edit_plan.regions)
		if self.audio_info is None and not uses_pitch:
			return ffmpeg.DEFAULT_SAMPLE_RATE
		return self._audio_info()['sample_rate']

	#============================
	def execute(self, job: Job):
		self.prepare()
		return self.executor.run(job, self.graph, self.input_file,
			self.output_file, self.plan.output_format, self.plan.quality,
			self.sample_rate)

	#============================
	def run(self, sink=None):
		job = self.create_job(sink)
		return self.execute(job)

#============================================

class EditService():
	"""
	Runs sessions on worker threads and tracks them in a job registry.

	A job stays in the registry only while it can still be cancelled; the
	worker removes it once it reaches a terminal state.
	"""
	def __init__(self, settings: dict = None, sink=None):
		if settings is None:
			settings = config.build_settings(None)
		self.settings = settings
		self.sink = sink
		self.registry = JobRegistry()
		self.sweeper = None
		if settings['cleanup_enabled'] and len(settings['cleanup_directories']) > 0:
			self.sweeper = TempSweeper.from_settings(settings)
			self.sweeper.start()
		self._threads = {}
		self._lock = threading.Lock()

	#============================
	def submit(self, session: EditSession) -> Job:
		"""
		Validate and plan synchronously, then render on a worker thread.

		Validation and probe errors raise here, before any thread or engine
		starts.
		"""
		job = session.create_job(self.sink)
		self.registry.add(job)
		thread = threading.Thread(target=self._run_job, args=(session, job),
			name=f"audiocut-{job.job_id}", daemon=True)
		with self._lock:
			self._threads[job.job_id] = thread
		thread.start()
		return job

	#============================
	def _run_job(self, session: EditSession, job: Job) -> None:
		try:
			session.execute(job)
		except AudioCutError as exc:
			# job.error and the terminal progress event carry the failure
			utils.log_message(f"job {job.job_id} ended: {exc}")
			self._fail_job(job, exc)
		except Exception as exc:
			utils.log_message(f"job {job.job_id} failed: {exc}")
			self._fail_job(job, ProcessingError(f"job failed: {exc}"))
		finally:
			self.registry.remove(job.job_id)
			with self._lock:
				self._threads.pop(job.job_id, None)

	#============================
	def _fail_job(self, job: Job, error) -> None:
		if job.is_terminal:
			return
		job.error = error
		job.transition(STATE_FAILED)
		job.reporter.error(str(error))

	#============================
	def wait(self, job: Job, timeout: float = None) -> Job:
		with self._lock:
			thread = self._threads.get(job.job_id)
		if thread is not None:
			thread.join(timeout)
		return job

	#============================
	def cancel(self, job_id: str) -> bool:
		return self.registry.cancel(job_id)

	#============================
	def shutdown(self, timeout: float = 10.0) -> None:
		for job in self.registry.active_jobs():
			job.cancel()
		with self._lock:
			threads = list(self._threads.values())
		for thread in threads:
			thread.join(timeout)
		if self.sweeper is not None:
			self.sweeper.stop()
