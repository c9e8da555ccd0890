#!/usr/bin/env python3

import threading
import time

#============================================

STAGE_INITIALIZING = 'initializing'
STAGE_PROCESSING = 'processing'
STAGE_VERIFYING = 'verifying'
STAGE_COMPLETED = 'completed'
STAGE_ERROR = 'error'
STAGE_CANCELLED = 'cancelled'

TERMINAL_STAGES = (STAGE_COMPLETED, STAGE_ERROR, STAGE_CANCELLED)

PROCESSING_FLOOR = 5.0
PROCESSING_CEILING = 95.0

#============================================

class ProgressEvent():
	def __init__(self, job_id: str, stage: str, percent: float, message: str = "",
		time_remaining: float = None):
		self.job_id = job_id
		self.stage = stage
		self.percent = float(percent)
		self.message = message
		self.time_remaining = time_remaining
		self.timestamp = time.time()

	#============================
	@property
	def is_terminal(self) -> bool:
		return self.stage in TERMINAL_STAGES

	#============================
	def to_dict(self) -> dict:
		data = {
			'jobId': self.job_id,
			'stage': self.stage,
			'percent': round(self.percent, 1),
			'message': self.message,
		}
		if self.time_remaining is not None:
			data['timeRemaining'] = round(self.time_remaining, 1)
		return data

	#============================
	def __repr__(self) -> str:
		return f"ProgressEvent({self.job_id!r}, {self.stage!r}, {self.percent:.1f})"

#============================================

def scale_processing_percent(done_seconds: float, total_seconds: float) -> float:
	"""
	Map engine output time onto the [5, 95] processing band.
	"""
	if total_seconds is None or total_seconds <= 0:
		return PROCESSING_FLOOR
	fraction = max(0.0, min(1.0, done_seconds / total_seconds))
	span = PROCESSING_CEILING - PROCESSING_FLOOR
	return PROCESSING_FLOOR + fraction * span

#============================================

def estimate_time_remaining(elapsed: float, done_seconds: float,
	total_seconds: float) -> float:
	if done_seconds is None or done_seconds <= 0 or total_seconds is None:
		return None
	rate = done_seconds / max(elapsed, 1e-6)
	remaining = max(0.0, total_seconds - done_seconds)
	return remaining / rate

#============================================

class ProgressReporter():
	"""
	Per-job progress channel.

	Percent never decreases and nothing is delivered after a terminal event.
	The sink is any callable taking a ProgressEvent.
	"""
	def __init__(self, job_id: str, sink=None):
		self.job_id = job_id
		self.sink = sink
		self.events = []
		self._last_percent = 0.0
		self._finished = False
		self._lock = threading.Lock()

	#============================
	@property
	def finished(self) -> bool:
		return self._finished

	#============================
	@property
	def last_event(self) -> ProgressEvent:
		if len(self.events) == 0:
			return None
		return self.events[-1]

	#============================
	def emit(self, stage: str, percent: float, message: str = "",
		time_remaining: float = None) -> ProgressEvent:
		with self._lock:
			if self._finished:
				return None
			percent = max(0.0, min(100.0, float(percent)))
			percent = max(percent, self._last_percent)
			event = ProgressEvent(self.job_id, stage, percent, message, time_remaining)
			self._last_percent = percent
			if event.is_terminal:
				self._finished = True
			self.events.append(event)
		if self.sink is not None:
			self.sink(event)
		return event

	#============================
	def initializing(self, message: str = "Preparing job") -> ProgressEvent:
		return self.emit(STAGE_INITIALIZING, 0, message)

	#============================
	def processing(self, percent: float, message: str = "Processing audio",
		time_remaining: float = None) -> ProgressEvent:
		percent = max(PROCESSING_FLOOR, min(PROCESSING_CEILING, percent))
		return self.emit(STAGE_PROCESSING, percent, message, time_remaining)

	#============================
	def verifying(self, message: str = "Verifying output") -> ProgressEvent:
		return self.emit(STAGE_VERIFYING, PROCESSING_CEILING, message)

	#============================
	def completed(self, message: str = "Completed") -> ProgressEvent:
		return self.emit(STAGE_COMPLETED, 100, message, 0.0)

	#============================
	def error(self, message: str) -> ProgressEvent:
		return self.emit(STAGE_ERROR, self._last_percent, message)

	#============================
	def cancelled(self, message: str = "Cancelled") -> ProgressEvent:
		return self.emit(STAGE_CANCELLED, self._last_percent, message)
