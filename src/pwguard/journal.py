"""Structured record of watchdog state transitions for offline diagnosis."""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionEvent:
    """One state change of the watchdog."""

    previous: str
    current: str
    reason: str
    timestamp: datetime
    consecutive_failures: int
    current_tier: int | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class TransitionJournal:
    """
    Writes one event per transition to the log and, optionally, a JSON-lines file.

    Journal write failures are logged and dropped.
    """

    def __init__(self, path: str | Path | None = None, history: int = 200):
        self.path = Path(path).expanduser() if path else None
        self.events: deque[TransitionEvent] = deque(maxlen=history)

    def record(self, event: TransitionEvent) -> None:
        self.events.append(event)
        logger.info(
            f"{event.previous} -> {event.current}: {event.reason} "
            f"(failures={event.consecutive_failures}, tier={event.current_tier})",
            extra={"transition": event.to_dict()},
        )

        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(event.to_dict()) + "\n")
        except OSError as e:
            logger.error(f"Failed to write transition journal {self.path}: {e}")
