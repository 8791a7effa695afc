"""Progress reporting and cancellation for long-running clustering jobs."""

import logging
import sys
from abc import ABC, abstractmethod
from typing import List, Optional, TextIO

from tqdm import tqdm

logger = logging.getLogger(__name__)


class Cancelled(Exception):
    """Raised from DelayCallback.delay to abort a running job."""
    pass


class DelayCallback(ABC):
    """Receives progress notifications; ``delay`` is the only cancellation point."""

    def begin(self) -> None:
        pass

    @abstractmethod
    def delay(self, done: int, total: int) -> None:
        """Report progress. May raise Cancelled."""
        pass

    def end(self) -> None:
        pass

    def add_warning(self, message: str) -> None:
        logger.warning(message)


class NullProgress(DelayCallback):
    """Ignores all progress notifications."""

    def delay(self, done: int, total: int) -> None:
        pass


class TqdmProgress(DelayCallback):
    """Shows each phase of a job as a tqdm progress bar."""

    def __init__(self, desc: str = "Clustering"):
        self.desc = desc
        self.warnings: List[str] = []
        self._pbar: Optional[tqdm] = None

    def begin(self) -> None:
        self.end()

    def delay(self, done: int, total: int) -> None:
        if self._pbar is None or self._pbar.total != total:
            if self._pbar is not None:
                self._pbar.close()
            self._pbar = tqdm(total=total, desc=self.desc, unit=" steps")
        self._pbar.n = done
        self._pbar.refresh()

    def end(self) -> None:
        if self._pbar is not None:
            self._pbar.close()
            self._pbar = None

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)
        tqdm.write(f"Warning: {message}")


class PercentProgress(DelayCallback):
    """Writes progress in 10% steps, one line per step."""

    def __init__(self, stream: Optional[TextIO] = None, label: str = "Clustering"):
        self.stream = stream or sys.stderr
        self.label = label
        self.warnings: List[str] = []
        self._last_step = -1

    def begin(self) -> None:
        self._last_step = -1

    def delay(self, done: int, total: int) -> None:
        if total <= 0:
            return
        step = (done * 10) // total
        if step > self._last_step:
            self._last_step = step
            self.stream.write(f"{self.label}: {step * 10}%\n")
            self.stream.flush()

    def end(self) -> None:
        self._last_step = -1

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)
        self.stream.write(f"Warning: {message}\n")
