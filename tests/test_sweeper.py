#!/usr/bin/env python3

"""
Unit tests for the stale file sweeper.
"""

# Standard Library
import os
import sys
import tempfile
import time
import unittest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

from audiocutlib.core import config
from audiocutlib.core.sweeper import TempSweeper

#============================================

def _touch(filepath: str, mtime: float) -> None:
	with open(filepath, "wb") as handle:
		handle.write(b"x")
	os.utime(filepath, (mtime, mtime))

#============================================

class SweeperTest(unittest.TestCase):
	#============================================
	def setUp(self) -> None:
		self.temp_dir = tempfile.TemporaryDirectory()
		self.temp_path = os.path.join(self.temp_dir.name, "temp")
		self.processed_path = os.path.join(self.temp_dir.name, "processed")
		os.makedirs(self.temp_path)
		os.makedirs(self.processed_path)

	#============================================
	def tearDown(self) -> None:
		self.temp_dir.cleanup()

	#============================================
	def test_only_expired_files_are_removed(self) -> None:
		now = 1000000.0
		old_temp = os.path.join(self.temp_path, "old.partial.mp3")
		new_temp = os.path.join(self.temp_path, "new.partial.mp3")
		processed = os.path.join(self.processed_path, "song_cut.mp3")
		_touch(old_temp, now - 3700)
		_touch(new_temp, now - 100)
		# older than the temp ttl but inside the processed ttl
		_touch(processed, now - 3700)
		sweeper = TempSweeper(
			{'temp': self.temp_path, 'processed': self.processed_path},
			{'temp': 3600, 'processed': 86400},
		)
		removed = sweeper.sweep_once(now)
		self.assertEqual(removed, [old_temp])
		self.assertTrue(os.path.exists(new_temp))
		self.assertTrue(os.path.exists(processed))
		self.assertEqual(sweeper.removed_count, 1)

	#============================================
	def test_subdirectories_and_missing_dirs_are_skipped(self) -> None:
		os.makedirs(os.path.join(self.temp_path, "nested"))
		sweeper = TempSweeper(
			{'temp': self.temp_path, 'upload': os.path.join(self.temp_dir.name, "gone")},
			{'temp': 0, 'upload': 0},
		)
		self.assertEqual(sweeper.sweep_once(time.time() + 10), [])
		self.assertTrue(os.path.isdir(os.path.join(self.temp_path, "nested")))

	#============================================
	def test_unknown_role_rejected(self) -> None:
		with self.assertRaises(RuntimeError):
			TempSweeper({'cache': self.temp_path}, {'temp': 60})

	#============================================
	def test_background_thread_sweeps(self) -> None:
		stale = os.path.join(self.temp_path, "stale.mp3")
		_touch(stale, time.time() - 10)
		sweeper = TempSweeper({'temp': self.temp_path}, {'temp': 1}, interval=0.05)
		sweeper.start()
		self.assertTrue(sweeper.running)
		deadline = time.time() + 5
		while os.path.exists(stale) and time.time() < deadline:
			time.sleep(0.02)
		sweeper.stop()
		self.assertFalse(os.path.exists(stale))
		self.assertFalse(sweeper.running)

	#============================================
	def test_from_settings(self) -> None:
		settings = config.build_settings({'settings': {'cleanup': {
			'directories': {'processed': self.processed_path}}}})
		sweeper = TempSweeper.from_settings(settings)
		self.assertEqual(sweeper.directories, {'processed': self.processed_path})
		self.assertEqual(sweeper.ttls['processed'], 86400.0)

#============================================

def main() -> None:
	"""Run the unit tests."""
	unittest.main()

#============================================

if __name__ == "__main__":
	main()
