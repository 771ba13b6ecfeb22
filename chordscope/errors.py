"""Exceptions raised by chordscope.

Almost every analysis problem degrades to "no evidence" inside the
pipeline. Only unusable input and host cancellation reach the caller.
"""


class ChordscopeError(Exception):
    """Base class for chordscope errors."""


class EmptyAudioError(ChordscopeError, ValueError):
    """Audio is empty, zero-length or not finite and cannot be analyzed."""


class AnalysisCancelled(ChordscopeError):
    """The host asked to stop; raised only at a stage boundary."""

    def __init__(self, stage: str):
        super().__init__(f"Analysis cancelled before stage '{stage}'")
        self.stage = stage
