"""Diagnostics and progress reporting.

Algorithmic code never prints. It emits DiagnosticEvents into whatever
observer the caller supplies; the default observer drops them. Progress
is reported and cancellation checked only between stages.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import structlog

from .errors import AnalysisCancelled

log = structlog.get_logger()


@dataclass(frozen=True)
class DiagnosticEvent:
    """A structured note about a decision taken by a stage."""
    stage: str  # e.g. "key", "refine"
    name: str  # e.g. "tonic_votes", "pattern_fix"
    data: Dict[str, Any] = field(default_factory=dict)


DiagnosticObserver = Callable[[DiagnosticEvent], None]
ProgressCallback = Callable[[str, float], None]
CancelCheck = Callable[[], bool]


def null_observer(event: DiagnosticEvent) -> None:
    """Observer that ignores every event."""


class DiagnosticCollector:
    """Observer that keeps every event, optionally forwarding to another."""

    def __init__(self, forward: Optional[DiagnosticObserver] = None):
        self.events: List[DiagnosticEvent] = []
        self.forward = forward

    def __call__(self, event: DiagnosticEvent) -> None:
        self.events.append(event)
        if self.forward is not None:
            self.forward(event)

    def named(self, name: str) -> List[DiagnosticEvent]:
        """All events with the given name, in emission order."""
        return [e for e in self.events if e.name == name]

    def for_stage(self, stage: str) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.stage == stage]

    def clear(self) -> None:
        self.events.clear()


class LoggingObserver:
    """Forward diagnostic events to structlog."""

    def __init__(self, logger=None, level: str = "debug"):
        self.logger = logger or log
        self.level = level

    def __call__(self, event: DiagnosticEvent) -> None:
        emit = getattr(self.logger, self.level)
        emit(event.name, stage=event.stage, **event.data)


class Emitter:
    """Small helper bound to one stage name."""

    def __init__(self, stage: str, observer: Optional[DiagnosticObserver] = None):
        self.stage = stage
        self.observer = observer or null_observer

    def __call__(self, name: str, **data) -> None:
        self.observer(DiagnosticEvent(self.stage, name, data))


class ProgressReporter:
    """Report stage progress and honour cancellation at stage boundaries."""

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck] = None,
    ):
        self.callback = callback
        self.should_cancel = should_cancel

    def checkpoint(self, stage: str, fraction: float) -> None:
        """
        Mark a stage boundary.

        Args:
            stage: Name of the stage about to start (or "done")
            fraction: Overall fraction complete, 0.0 - 1.0

        Raises:
            AnalysisCancelled: If the host requested cancellation
        """
        if self.should_cancel is not None and self.should_cancel():
            log.info("analysis_cancelled", stage=stage)
            raise AnalysisCancelled(stage)
        if self.callback is not None:
            self.callback(stage, float(min(1.0, max(0.0, fraction))))
