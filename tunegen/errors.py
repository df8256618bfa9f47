"""Exceptions raised by the generation client and poller."""

from typing import Optional


class TunegenError(Exception):
    """Base class for all tunegen errors."""


class TransportError(TunegenError):
    """The HTTP call never completed (timeout, DNS, refused connection...)."""


class GenerationRejected(TunegenError):
    """The remote API answered a submission with a non-success code."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class StatusUnavailable(TunegenError):
    """A status check returned an error or a body that could not be read."""


class RemoteFailure(TunegenError):
    """The remote API reported a terminal failure for a job."""

    def __init__(self, task_id: str, message: str):
        super().__init__(f"Generation {task_id} failed: {message}")
        self.task_id = task_id
        self.message = message


class GenerationTimeout(TunegenError):
    """A job did not reach a terminal state within the polling budget."""

    def __init__(self, task_id: str, elapsed: float):
        super().__init__(f"Generation {task_id} timed out after {elapsed:.0f}s")
        self.task_id = task_id
        self.elapsed = elapsed
