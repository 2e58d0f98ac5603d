"""Progress tracking and checkpoints for batch runs."""
import dataclasses
import json
import os
import threading
import time
from typing import Any, Dict, Optional, Set

from batchverify.types import ProgressState, VerificationResult


class ProgressTracker:
    """
    Counters for one batch run.

    Every mutation happens under a lock so concurrent completions never
    lose an update. Positions refer to the caller's contract list.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state = ProgressState()
        self._pending: Set[int] = set()

    def reset(self, total: int, jump: int = 0) -> None:
        with self._lock:
            self._state = ProgressState(total=total, index=jump)
            self._pending.clear()

    def mark_dispatched(self, position: int) -> None:
        with self._lock:
            self._pending.add(position)
            self._state.index = max(self._state.index, position + 1)

    def mark_skipped(self, position: int) -> None:
        with self._lock:
            self._state.skipped += 1
            self._state.index = max(self._state.index, position + 1)

    def record(self, position: int, result: VerificationResult) -> None:
        """Count a settled verification."""
        with self._lock:
            self._pending.discard(position)
            if result.matched:
                self._state.succeeded += 1
            else:
                self._state.failed += 1

    def cancel(self) -> None:
        with self._lock:
            self._state.cancelled = True

    def complete(self) -> None:
        """Mark the run finished; a completed checkpoint is never resumed."""
        with self._lock:
            if not self._state.cancelled:
                self._state.completed = True

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._state.cancelled

    def snapshot(self) -> ProgressState:
        with self._lock:
            return dataclasses.replace(self._state)

    def resume_index(self) -> int:
        """Lowest position not yet settled; a safe jump for the next run."""
        with self._lock:
            if self._pending:
                return min(self._pending)
            return self._state.index

    def save_checkpoint(self, path: str) -> None:
        """
        Save current progress to a checkpoint file.

        Args:
            path: Checkpoint file location
        """
        state = self.snapshot()
        payload: Dict[str, Any] = dataclasses.asdict(state)
        payload["resume_index"] = self.resume_index()
        payload["timestamp"] = int(time.time())

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp = f"{path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp, path)

    @staticmethod
    def load_checkpoint(path: str) -> Optional[Dict[str, Any]]:
        """
        Load a checkpoint.

        Returns:
            Checkpoint dictionary or None when missing or unreadable
        """
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None
