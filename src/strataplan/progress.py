"""Structured progress events emitted by the stratification pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DISTANCE_COMPUTED = "distance_computed"
ITERATION = "iteration"
CONVERGED = "converged"
VARIANCE_EXPLAINED = "variance_explained"


@dataclass(frozen=True)
class ProgressEvent:
    kind: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)


EventSink = Callable[[ProgressEvent], None]


def log_event(event: ProgressEvent) -> None:
    """Default sink: forward the event to the module logger."""
    if event.kind == ITERATION:
        logger.debug("%s", event.message)
    else:
        logger.info("%s", event.message)


def collect_events() -> Tuple[List[ProgressEvent], EventSink]:
    """Return an event list and a sink that appends to it."""
    events: List[ProgressEvent] = []
    return events, events.append


def emit(sink: Optional[EventSink], kind: str, message: str, **data: Any) -> None:
    event = ProgressEvent(kind=kind, message=message, data=data)
    (sink or log_event)(event)
