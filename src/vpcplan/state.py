"""
Per-environment state handles.

A handle is always passed explicitly to whatever reads or mutates state;
there is no process-wide default. Each handle guards its document with an
exclusive lock so two mutating runs never interleave.
"""

import json
import os
import socket
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from google.api_core import exceptions as api_exceptions
from tenacity import Retrying, retry_if_exception_type, stop_after_delay, wait_fixed

from .clients import get_storage_client
from .core import REMOTE_LOCK_OBJECT, REMOTE_STATE_OBJECT, UNREADABLE_LOCK_ID
from .errors import ConfigurationError, StateLockError
from .logger import logger
from .schemas.state import LockInfo, StateDocument


def _who() -> str:
    user = os.environ.get("USER") or os.environ.get("USERNAME") or "unknown"
    return f"{user}@{socket.gethostname()}"


class StateHandle(ABC):
    def __init__(self, environment: str):
        self.environment = environment

    @property
    @abstractmethod
    def location(self) -> str: ...

    @abstractmethod
    def _read_raw(self) -> str | None: ...

    @abstractmethod
    def _write_raw(self, data: str) -> None: ...

    @abstractmethod
    def _acquire(self, info: LockInfo) -> None:
        """Create the lock or raise StateLockError if it already exists."""

    @abstractmethod
    def _current_lock(self) -> LockInfo | None: ...

    @abstractmethod
    def _release(self) -> None: ...

    def read(self) -> StateDocument:
        raw = self._read_raw()
        if raw is None:
            return StateDocument(environment=self.environment)
        doc = StateDocument.model_validate_json(raw)
        if doc.environment != self.environment:
            raise ConfigurationError.single(
                "backend",
                "environment",
                f"state at {self.location} belongs to environment "
                f"{doc.environment!r}, not {self.environment!r}",
            )
        return doc

    def write(self, doc: StateDocument) -> StateDocument:
        doc = doc.model_copy(update={"serial": doc.serial + 1})
        self._write_raw(doc.model_dump_json(indent=2))
        logger.debug(f"Wrote state serial {doc.serial} to {self.location}")
        return doc

    def lock(self, operation: str, timeout: float = 0.0) -> LockInfo:
        """
        Takes the exclusive lock. With timeout > 0, keeps retrying until the
        holder releases it or the timeout elapses.
        """
        info = LockInfo(
            operation=operation,
            who=_who(),
            created=datetime.now(timezone.utc),
            path=self.location,
        )
        if timeout <= 0:
            self._acquire(info)
        else:
            for attempt in Retrying(
                stop=stop_after_delay(timeout),
                wait=wait_fixed(1),
                retry=retry_if_exception_type(StateLockError),
                reraise=True,
            ):
                with attempt:
                    self._acquire(info)
        logger.debug(f"Acquired state lock {info.id} on {self.location}")
        return info

    def unlock(self, info: LockInfo) -> None:
        current = self._current_lock()
        if current is None:
            logger.warning(f"State lock on {self.location} was already released")
            return
        if current.id != info.id:
            raise StateLockError(
                f"State lock on {self.location} is held by {current.who}, not by us",
                current.model_dump(mode="json"),
            )
        self._release()

    def force_unlock(self, lock_id: str) -> None:
        current = self._current_lock()
        if current is None:
            raise StateLockError(f"No lock is held on {self.location}")
        if current.id != lock_id:
            raise StateLockError(
                f"Lock id mismatch: {self.location} is locked with {current.id}",
                current.model_dump(mode="json"),
            )
        self._release()

    @contextmanager
    def locked(self, operation: str, timeout: float = 0.0) -> Iterator[LockInfo]:
        info = self.lock(operation, timeout=timeout)
        try:
            yield info
        finally:
            self.unlock(info)

    def _unreadable_lock(self) -> LockInfo:
        """
        Stands in for a lock that exists but cannot be parsed, e.g. after a
        crash between creating and writing it. Still held until force-unlocked.
        """
        logger.warning(
            f"Unreadable lock on {self.location}; clear it with "
            f"`vpcplan force-unlock ENV_FILE {UNREADABLE_LOCK_ID}` if no run is active"
        )
        return LockInfo(
            id=UNREADABLE_LOCK_ID,
            operation="unknown",
            who="unknown",
            created=datetime.now(timezone.utc),
            path=self.location,
        )

    def _contention(self, holder: LockInfo | None) -> StateLockError:
        if holder is None:
            return StateLockError(f"State at {self.location} is locked")
        return StateLockError(
            f"State at {self.location} is locked by {holder.who} "
            f"({holder.operation}, id {holder.id}, since {holder.created:%Y-%m-%d %H:%M:%S})",
            holder.model_dump(mode="json"),
        )


class LocalStateHandle(StateHandle):
    """State in a JSON file; the lock is a sibling file created exclusively."""

    def __init__(self, path: str | Path, environment: str):
        super().__init__(environment)
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    @property
    def location(self) -> str:
        return str(self.path)

    def _read_raw(self) -> str | None:
        if not self.path.exists():
            return None
        return self.path.read_text()

    def _write_raw(self, data: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(data)
        os.replace(tmp, self.path)

    def _acquire(self, info: LockInfo) -> None:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            raise self._contention(self._current_lock()) from None
        with os.fdopen(fd, "w") as f:
            f.write(info.model_dump_json())

    def _current_lock(self) -> LockInfo | None:
        try:
            raw = self.lock_path.read_text()
        except FileNotFoundError:
            return None
        try:
            return LockInfo.model_validate_json(raw)
        except ValueError:
            return self._unreadable_lock()

    def _release(self) -> None:
        self.lock_path.unlink(missing_ok=True)


class GcsStateHandle(StateHandle):
    """
    State in a Cloud Storage object under `{prefix}/`.
    The lock object is created with if_generation_match=0, so only one
    writer can ever create it.
    """

    def __init__(self, bucket: str, prefix: str, environment: str):
        super().__init__(environment)
        self.bucket_name = bucket
        self.prefix = prefix.strip("/")

    @property
    def _state_blob(self) -> Any:
        return get_storage_client().bucket(self.bucket_name).blob(
            f"{self.prefix}/{REMOTE_STATE_OBJECT}"
        )

    @property
    def _lock_blob(self) -> Any:
        return get_storage_client().bucket(self.bucket_name).blob(
            f"{self.prefix}/{REMOTE_LOCK_OBJECT}"
        )

    @property
    def location(self) -> str:
        return f"gs://{self.bucket_name}/{self.prefix}/{REMOTE_STATE_OBJECT}"

    def _read_raw(self) -> str | None:
        try:
            return str(self._state_blob.download_as_text())
        except api_exceptions.NotFound:
            return None

    def _write_raw(self, data: str) -> None:
        self._state_blob.upload_from_string(data, content_type="application/json")

    def _acquire(self, info: LockInfo) -> None:
        try:
            self._lock_blob.upload_from_string(
                info.model_dump_json(),
                content_type="application/json",
                if_generation_match=0,
            )
        except api_exceptions.PreconditionFailed:
            raise self._contention(self._current_lock()) from None

    def _current_lock(self) -> LockInfo | None:
        try:
            raw = self._lock_blob.download_as_text()
        except api_exceptions.NotFound:
            return None
        try:
            return LockInfo.model_validate(json.loads(raw))
        except ValueError:
            return self._unreadable_lock()

    def _release(self) -> None:
        try:
            self._lock_blob.delete()
        except api_exceptions.NotFound:
            logger.debug(f"Lock object under {self.prefix} already gone")
