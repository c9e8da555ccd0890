#!/usr/bin/env python3

#============================================

class AudioCutError(RuntimeError):
	pass

#============================================

class ValidationError(AudioCutError):
	"""Request field failed validation; raised before any subprocess runs."""
	def __init__(self, field: str, message: str):
		self.field = field
		self.message = message
		super().__init__(f"{field}: {message}")

#============================================

class EmptyResultError(AudioCutError):
	"""Silence removal would leave nothing of the target region."""
	def __init__(self, region_start, region_end):
		self.region_start = region_start
		self.region_end = region_end
		super().__init__(
			f"silence covers the whole region {region_start}-{region_end}"
		)

#============================================

class ProcessingError(AudioCutError):
	def __init__(self, message: str, returncode: int = None, stderr_tail: str = ""):
		self.returncode = returncode
		self.stderr_tail = stderr_tail
		text = message
		if stderr_tail:
			text = f"{message}\n{stderr_tail}"
		super().__init__(text)

#============================================

class CancelledError(AudioCutError):
	def __init__(self, job_id: str):
		self.job_id = job_id
		super().__init__(f"job {job_id} was cancelled")
