#!/usr/bin/env python3

import os
import threading
import time
from audiocutlib.core import utils

#============================================

class TempSweeper():
	"""
	Background thread that deletes stale files from managed directories.

	Each directory has a role ('temp', 'processed' or 'upload') and a file is
	removed once its modification time is older than the TTL for that role.

	Args:
		directories: Mapping of role to directory path.
		ttls: Mapping of role to TTL seconds.
		interval: Seconds between sweeps.
		clock: Callable returning the current epoch time.
	"""
	def __init__(self, directories: dict, ttls: dict, interval: float = 300.0,
		clock=time.time):
		for role in directories:
			if role not in ttls:
				raise RuntimeError(f"no ttl configured for cleanup role {role}")
		self.directories = dict(directories)
		self.ttls = dict(ttls)
		self.interval = float(interval)
		self.clock = clock
		self.removed_count = 0
		self._stop_event = threading.Event()
		self._thread = None

	#============================
	@classmethod
	def from_settings(cls, settings: dict):
		return cls(settings['cleanup_directories'], settings['cleanup_ttls'],
			settings['cleanup_interval'])

	#============================
	@property
	def running(self) -> bool:
		return self._thread is not None and self._thread.is_alive()

	#============================
	def sweep_once(self, now: float = None) -> list:
		"""
		Remove every expired file once.

		Returns:
			list: Paths that were removed.
		"""
		if now is None:
			now = self.clock()
		removed = []
		for role, directory in self.directories.items():
			if not os.path.isdir(directory):
				continue
			ttl = self.ttls[role]
			with os.scandir(directory) as entries:
				for entry in entries:
					if not entry.is_file(follow_symlinks=False):
						continue
					try:
						age = now - entry.stat(follow_symlinks=False).st_mtime
						if age <= ttl:
							continue
						os.remove(entry.path)
					except FileNotFoundError:
						# removed by its owner between scan and delete
						continue
					removed.append(entry.path)
		self.removed_count += len(removed)
		for filepath in removed:
			utils.log_message(f"cleanup: removed {filepath}")
		return removed

	#============================
	def start(self) -> None:
		if self.running:
			return
		self._stop_event.clear()
		self._thread = threading.Thread(target=self._run, name="audiocut-sweeper",
			daemon=True)
		self._thread.start()

	#============================
	def stop(self, timeout: float = 5.0) -> None:
		self._stop_event.set()
		if self._thread is not None:
			self._thread.join(timeout)
			self._thread = None

	#============================
	def _run(self) -> None:
		while not self._stop_event.wait(self.interval):
			try:
				self.sweep_once()
			except OSError as exc:
				utils.log_message(f"cleanup: sweep failed: {exc}")
