"""
Smolgen Workflow Errors
Exception taxonomy used to decide between retrying, waiting and aborting
"""


class WorkflowError(Exception):
    """Base workflow error"""
    pass


class NonRetryableError(WorkflowError):
    """Aborts the whole run; retrying cannot fix it"""
    pass


class ProviderError(WorkflowError):
    """An external generation provider returned an error"""
    pass


class AudioFetchError(WorkflowError):
    """Audio could not be fetched for fingerprinting"""
    pass


class IncompleteLyricsError(WorkflowError):
    """Lyrics response is missing a title, body or style tags"""

    def __init__(self, lyrics: dict):
        super().__init__(f"Generated incomplete lyrics: {lyrics}")
        self.lyrics = lyrics


class SongsNotReadyError(WorkflowError):
    """Songs have not reached the state a poll is waiting for"""
    pass


class StoreError(WorkflowError):
    """A durable store (relational, key/value or blob) rejected an operation"""
    pass


class InsufficientAudioDataError(WorkflowError):
    """
    A streaming song has not buffered enough bytes to fingerprint.

    Callers treat this as "wait longer", never as a broken song.
    """

    def __init__(self, bytes_received: int, bytes_required: int):
        super().__init__(
            f"Insufficient audio data: got {bytes_received} bytes, need {bytes_required}"
        )
        self.bytes_received = bytes_received
        self.bytes_required = bytes_required


class StepFailedError(WorkflowError):
    """A workflow step exhausted its retry budget"""

    def __init__(self, step: str, attempts: int, error: BaseException):
        super().__init__(f"Step '{step}' failed after {attempts} attempt(s): {error}")
        self.step = step
        self.attempts = attempts
        self.error = error


__all__ = [
    "WorkflowError",
    "NonRetryableError",
    "ProviderError",
    "AudioFetchError",
    "IncompleteLyricsError",
    "SongsNotReadyError",
    "StoreError",
    "InsufficientAudioDataError",
    "StepFailedError",
]
