"""Stateful shell around the pure progress manager.

:class:`ProgressStore` owns the current :class:`QuestProgress`, applies
manager transitions, forwards reward grants and hands each new snapshot to
a persistence collaborator. Memory is authoritative: a failed or slow save
never rolls back or blocks a transition. With an executor, saves are
fire-and-forget and only their outcome is logged.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol

from .manager import (
    CompleteSubRound,
    QuestionSource,
    Reset,
    RewardGrant,
    Transition,
    TransitionRequest,
    current_frontier,
    dispatch,
)
from .models import (
    Position,
    ProgressFormatError,
    QuestError,
    QuestProgress,
    build_initial_progress,
    check_invariants,
)

__all__ = [
    "JsonFileProgressPersistence",
    "PersistenceError",
    "ProgressPersistence",
    "ProgressStore",
]

_LOCK_SUFFIX = ".lock"
_LOCK_TIMEOUT_SECONDS = 5.0
_FORMAT_VERSION = 1

RewardSink = Callable[[RewardGrant], None]


class PersistenceError(QuestError):
    """Raised by persistence adapters when progress cannot be read/written."""


class ProgressPersistence(Protocol):
    def load_progress(self) -> Optional[QuestProgress]: ...

    def save_progress(self, progress: QuestProgress) -> bool: ...


class ProgressStore:
    """Hold the current progress and route every mutation through dispatch."""

    def __init__(
        self,
        persistence: ProgressPersistence,
        *,
        question_source: Optional[QuestionSource] = None,
        executor: Optional[Executor] = None,
        reward_sink: Optional[RewardSink] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._persistence = persistence
        self._question_source = question_source
        self._executor = executor
        self._reward_sink = reward_sink
        self._logger = logger or logging.getLogger(__name__)
        self._progress = build_initial_progress(question_source)

    @property
    def progress(self) -> QuestProgress:
        return self._progress

    def load(self) -> QuestProgress:
        """Restore persisted progress, falling back to the initial tree."""

        try:
            loaded = self._persistence.load_progress()
        except (PersistenceError, ProgressFormatError) as exc:
            self._logger.warning(
                "progress load failed; starting fresh",
                extra={"error": str(exc)},
            )
            loaded = None
        except Exception:
            self._logger.exception("progress load raised; starting fresh")
            loaded = None
        if loaded is not None:
            problems = check_invariants(loaded)
            if problems:
                self._logger.warning(
                    "persisted progress violates invariants; starting fresh",
                    extra={"problems": problems[:10]},
                )
                loaded = None
        self._progress = loaded or build_initial_progress(
            self._question_source
        )
        return self._progress

    def complete_sub_round(
        self,
        level_index: int,
        round_index: int,
        sub_round_index: int,
        stars_earned: int,
    ) -> Transition:
        request = CompleteSubRound(
            Position(level_index, round_index, sub_round_index), stars_earned
        )
        return self._apply(request)

    def reset(self) -> Transition:
        return self._apply(Reset(self._question_source))

    def current_frontier(self) -> Optional[Position]:
        return current_frontier(self._progress)

    def _apply(self, request: TransitionRequest) -> Transition:
        transition = dispatch(self._progress, request)
        if transition.rejection is not None:
            self._logger.info(
                "transition rejected",
                extra={
                    "reason": transition.rejection.reason.value,
                    "position": str(transition.rejection.position),
                },
            )
            return transition
        if not transition.changed:
            return transition

        self._progress = transition.progress
        for grant in transition.grants:
            self._logger.info(
                "reward granted",
                extra={"kind": grant.kind, "node": grant.node_id},
            )
            if self._reward_sink is not None:
                self._reward_sink(grant)
        self._persist(transition.progress)
        return transition

    def _persist(self, snapshot: QuestProgress) -> None:
        # Snapshots are never mutated after dispatch, so handing the
        # object to another thread is safe.
        if self._executor is None:
            self._log_save(self._save(snapshot))
            return
        future = self._executor.submit(self._save, snapshot)
        future.add_done_callback(self._log_save_future)

    def _save(self, snapshot: QuestProgress) -> bool:
        try:
            return bool(self._persistence.save_progress(snapshot))
        except Exception:
            self._logger.exception("progress save raised")
            return False

    def _log_save_future(self, future: "Future[bool]") -> None:
        self._log_save(future.result())

    def _log_save(self, ok: bool) -> None:
        if ok:
            self._logger.debug("progress saved")
        else:
            self._logger.warning(
                "progress save failed; keeping in-memory state"
            )


class JsonFileProgressPersistence:
    """Store progress as a JSON document with atomic replace-on-write."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load_progress(self) -> Optional[QuestProgress]:
        if not self._path.is_file():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(
                f"Failed to read progress file {self._path}: {exc}"
            ) from exc
        if not isinstance(payload, Mapping) or "progress" not in payload:
            raise PersistenceError(
                f"Progress file {self._path} has no 'progress' entry."
            )
        return QuestProgress.from_dict(payload["progress"])

    def save_progress(self, progress: QuestProgress) -> bool:
        payload = {
            "version": _FORMAT_VERSION,
            "saved_at": time.time(),
            "progress": progress.to_dict(),
        }
        lock_path = self._path.with_name(self._path.name + _LOCK_SUFFIX)
        try:
            with _FileLock(lock_path):
                _atomic_write_json(self._path, payload)
        except (OSError, PersistenceError):
            return False
        return True


class _FileLock:
    """Simple filesystem lock using exclusive file creation."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def __enter__(self) -> "_FileLock":
        self._path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + _LOCK_TIMEOUT_SECONDS
        while True:
            try:
                fd = os.open(
                    self._path,
                    os.O_CREAT | os.O_EXCL | os.O_WRONLY,
                )
                os.close(fd)
                return self
            except FileExistsError:
                if time.monotonic() > deadline:
                    raise PersistenceError(
                        f"Timed out waiting for progress lock: {self._path}"
                    )
                time.sleep(0.05)

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self._path.unlink(missing_ok=True)


def _atomic_write_json(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w",
        delete=False,
        encoding="utf-8",
        dir=str(path.parent),
        suffix=".tmp",
    )
    try:
        json.dump(payload, handle, sort_keys=True)
        handle.flush()
        os.fsync(handle.fileno())
    finally:
        handle.close()
    os.replace(handle.name, path)
    try:
        path.chmod(0o600)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
