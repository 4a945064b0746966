"""Build progress events and a counting, logging progress tracker."""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


class ProgressEventType(enum.Enum):
    START = "start"
    ACCOUNT = "account"
    REPOSITORY = "repository"
    MODULE = "module"
    SKIP = "skip"
    COMPLETE = "complete"


@dataclass
class ProgressEvent:
    type: ProgressEventType
    account: str = ""
    repository: str = ""
    module: str = ""
    current: int = 0
    total: int = 0
    detail: str = ""


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressTracker:
    """Counts build events and logs them.

    Pass an instance as the builder's ``progress`` callback; ``summary()``
    returns the totals once the build completes. Safe to call from the
    builder's worker threads.
    """

    def __init__(self, forward: ProgressCallback | None = None):
        self._forward = forward
        self._lock = threading.Lock()
        self.started_at = 0.0
        self.finished_at = 0.0
        self.accounts = 0
        self.repositories = 0
        self.modules = 0
        self.skipped = 0

    def __call__(self, event: ProgressEvent) -> None:
        with self._lock:
            if event.type == ProgressEventType.START:
                self.started_at = time.monotonic()
                logger.info("building dependency graph for %d account(s)", event.total)
            elif event.type == ProgressEventType.ACCOUNT:
                self.accounts += 1
                logger.info("[%d/%d] scanning %s (%s)",
                            event.current, event.total, event.account, event.detail)
            elif event.type == ProgressEventType.REPOSITORY:
                self.repositories += 1
                logger.debug("  [%d/%d] %s", event.current, event.total, event.repository)
            elif event.type == ProgressEventType.MODULE:
                self.modules += 1
            elif event.type == ProgressEventType.SKIP:
                self.skipped += 1
                logger.debug("  skipped %s/%s: %s", event.account, event.repository, event.detail)
            elif event.type == ProgressEventType.COMPLETE:
                self.finished_at = time.monotonic()
                logger.info("graph build complete: %d modules from %d repositories in %.2fs",
                            self.modules, self.repositories, self.elapsed)
        if self._forward is not None:
            self._forward(event)

    @property
    def elapsed(self) -> float:
        if not self.started_at:
            return 0.0
        return (self.finished_at or time.monotonic()) - self.started_at

    def summary(self) -> dict[str, float | int]:
        return {
            "accounts": self.accounts,
            "repositories": self.repositories,
            "modules": self.modules,
            "skipped": self.skipped,
            "duration": round(self.elapsed, 3),
        }
