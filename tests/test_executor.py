#!/usr/bin/env python3

"""
Tests for the job executor using a stand-in engine script.
"""

# Standard Library
import os
import sys
import tempfile
import threading
import time
import unittest
from decimal import Decimal

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

from audiocutlib.core import executor
from audiocutlib.core.errors import CancelledError
from audiocutlib.core.errors import ProcessingError
from audiocutlib.core.filters import FilterGraph
from audiocutlib.core.filters import SourceSpan
from audiocutlib.core.plan import EditPlan
from audiocutlib.core.verifier import OutputVerifier
from fake_engine import make_command_builder
from fake_engine import write_engine

#============================================

def _graph() -> FilterGraph:
	return FilterGraph([SourceSpan(0, 1)], [], 0, 1)

#============================================

def _wait_for(predicate, timeout: float = 10.0) -> bool:
	deadline = time.time() + timeout
	while time.time() < deadline:
		if predicate():
			return True
		time.sleep(0.02)
	return False

#============================================

class ExecutorTest(unittest.TestCase):
	#============================================
	def setUp(self) -> None:
		self.temp_dir = tempfile.TemporaryDirectory()
		self.work_dir = self.temp_dir.name
		self.script = write_engine(self.work_dir)
		self.out_dir = os.path.join(self.work_dir, "out")
		self.output = os.path.join(self.out_dir, "result.mp3")

	#============================================
	def tearDown(self) -> None:
		self.temp_dir.cleanup()

	#============================================
	def _executor(self, mode: str, verifier=None) -> executor.ProcessingExecutor:
		return executor.ProcessingExecutor(verifier, make_command_builder(self.script, mode))

	#============================================
	def _leftovers(self) -> list:
		if not os.path.isdir(self.out_dir):
			return []
		return sorted(os.listdir(self.out_dir))

	#============================================
	def test_success_renames_and_verifies(self) -> None:
		verifier = OutputVerifier(tolerance='0.01', probe=lambda path: Decimal(1))
		job = executor.Job(EditPlan(1, 0, 1))
		result = self._executor('ok', verifier).run(job, _graph(), "in.mp3", self.output)
		self.assertEqual(job.state, executor.STATE_COMPLETED)
		self.assertEqual(result.output_path, self.output)
		self.assertEqual(self._leftovers(), ["result.mp3"])
		self.assertTrue(result.report.passed)
		stages = [event.stage for event in job.reporter.events]
		self.assertEqual(stages[0], 'initializing')
		self.assertEqual(stages[-2:], ['verifying', 'completed'])
		self.assertIn('processing', stages)
		percents = [event.percent for event in job.reporter.events]
		self.assertEqual(percents, sorted(percents))
		self.assertEqual(percents[-1], 100.0)
		for event in job.reporter.events:
			if event.stage == 'processing':
				self.assertGreaterEqual(event.percent, 5.0)
				self.assertLessEqual(event.percent, 95.0)

	#============================================
	def test_failure_removes_partial_output(self) -> None:
		job = executor.Job(EditPlan(1, 0, 1))
		with self.assertRaises(ProcessingError) as context:
			self._executor('fail').run(job, _graph(), "in.mp3", self.output)
		self.assertEqual(context.exception.returncode, 3)
		self.assertIn("boom", context.exception.stderr_tail)
		self.assertEqual(self._leftovers(), [])
		self.assertEqual(job.state, executor.STATE_FAILED)
		self.assertEqual(job.reporter.last_event.stage, 'error')

	#============================================
	def test_missing_output_is_an_error(self) -> None:
		job = executor.Job(EditPlan(1, 0, 1))
		with self.assertRaises(ProcessingError):
			self._executor('empty').run(job, _graph(), "in.mp3", self.output)
		self.assertEqual(self._leftovers(), [])
		self.assertEqual(job.state, executor.STATE_FAILED)

	#============================================
	def test_unwritable_output_directory_fails_job(self) -> None:
		blocker = os.path.join(self.work_dir, "blocker")
		with open(blocker, "w", encoding="utf-8") as handle:
			handle.write("not a directory")
		output = os.path.join(blocker, "sub", "out.mp3")
		job = executor.Job(EditPlan(1, 0, 1))
		with self.assertRaises(ProcessingError):
			self._executor('ok').run(job, _graph(), "in.mp3", output)
		self.assertEqual(job.state, executor.STATE_FAILED)
		self.assertIsInstance(job.error, ProcessingError)
		self.assertEqual(job.reporter.last_event.stage, 'error')

	#============================================
	def test_missing_engine_binary(self) -> None:
		def builder(graph, input_file, output_file, output_format, quality, sample_rate):
			return [os.path.join(self.work_dir, "no-such-engine")]
		job = executor.Job(EditPlan(1, 0, 1))
		with self.assertRaises(ProcessingError):
			executor.ProcessingExecutor(None, builder).run(job, _graph(), "in.mp3",
				self.output)
		self.assertEqual(job.state, executor.STATE_FAILED)

	#============================================
	def test_cancel_terminates_engine(self) -> None:
		job = executor.Job(EditPlan(1, 0, 1))
		errors = []

		def worker() -> None:
			try:
				self._executor('hang').run(job, _graph(), "in.mp3", self.output)
			except CancelledError as exc:
				errors.append(exc)

		thread = threading.Thread(target=worker)
		thread.start()
		ticked = _wait_for(lambda: len([event for event in job.reporter.events
			if event.stage == 'processing']) >= 2)
		self.assertTrue(ticked)
		self.assertTrue(job.cancel())
		thread.join(10)
		self.assertFalse(thread.is_alive())
		self.assertEqual(len(errors), 1)
		self.assertEqual(job.state, executor.STATE_CANCELLED)
		self.assertEqual(job.reporter.last_event.stage, 'cancelled')
		self.assertEqual(self._leftovers(), [])
		self.assertFalse(job.cancel())

	#============================================
	def test_cancel_before_start(self) -> None:
		job = executor.Job(EditPlan(1, 0, 1))
		self.assertTrue(job.cancel())
		with self.assertRaises(CancelledError):
			self._executor('ok').run(job, _graph(), "in.mp3", self.output)
		self.assertEqual(job.state, executor.STATE_CANCELLED)
		self.assertFalse(os.path.exists(self.output))

#============================================

class JobStateTest(unittest.TestCase):
	#============================================
	def test_terminal_states_are_final(self) -> None:
		job = executor.Job(EditPlan(1, 0, 1), job_id="fixed")
		job.transition(executor.STATE_RUNNING)
		job.transition(executor.STATE_COMPLETED)
		with self.assertRaises(RuntimeError):
			job.transition(executor.STATE_FAILED)
		with self.assertRaises(RuntimeError):
			job.transition(executor.STATE_RUNNING)

	#============================================
	def test_queued_cannot_complete_directly(self) -> None:
		job = executor.Job(EditPlan(1, 0, 1))
		with self.assertRaises(RuntimeError):
			job.transition(executor.STATE_COMPLETED)

	#============================================
	def test_registry(self) -> None:
		registry = executor.JobRegistry()
		job = registry.add(executor.Job(EditPlan(1, 0, 1), job_id="abc"))
		self.assertIs(registry.get("abc"), job)
		with self.assertRaises(RuntimeError):
			registry.add(executor.Job(EditPlan(1, 0, 1), job_id="abc"))
		self.assertEqual(registry.active_jobs(), [job])
		self.assertTrue(registry.cancel("abc"))
		self.assertFalse(registry.cancel("missing"))
		self.assertIs(registry.remove("abc"), job)
		self.assertEqual(len(registry), 0)

	#============================================
	def test_partial_path_is_hidden_sibling(self) -> None:
		path = executor.partial_output_path("/data/out/song.mp3", "job1")
		self.assertEqual(path, "/data/out/.song.job1.partial.mp3")

#============================================

def main() -> None:
	"""Run the unit tests."""
	unittest.main()

#============================================

if __name__ == "__main__":
	main()
