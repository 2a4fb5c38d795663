"""Anonymous per-device identity.

The first lookup issues an opaque identifier; every later lookup in the same
process returns the cached value. When a path is configured the identifier is
persisted there so the device keeps its identity across restarts. The file is
written atomically with owner-only permissions (0o600).
"""

import asyncio
import contextlib
import os
import tempfile
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger()

_IDENTITY_FILE_MODE = 0o600

_IDENTITY_LENGTH = 12


def _new_identity() -> str:
    return uuid.uuid4().hex[:_IDENTITY_LENGTH]


class IdentityProvider(Protocol):
    """Supplies a stable opaque identifier for this device/session."""

    async def get_identity(self) -> str: ...


class LocalIdentityProvider:
    """Issues one identity per device and caches it for the process lifetime."""

    def __init__(self, path: str | Path | None = None, id_factory: Callable[[], str] | None = None) -> None:
        self._path = Path(path).resolve() if path is not None else None
        self._id_factory = id_factory or _new_identity
        self._identity: str | None = None
        self._lock = asyncio.Lock()

    @property
    def cached_identity(self) -> str | None:
        return self._identity

    async def get_identity(self) -> str:
        if self._identity is not None:
            return self._identity
        async with self._lock:
            if self._identity is None:
                self._identity = self._load() or self._issue()
        return self._identity

    def _load(self) -> str | None:
        if self._path is None or not self._path.exists():
            return None
        stored = self._path.read_text(encoding="utf-8").strip()
        if not stored:
            logger.warning("identity file is empty, issuing a new identity", path=str(self._path))
            return None
        return stored

    def _issue(self) -> str:
        identity = self._id_factory()
        if self._path is not None:
            self._persist(self._path, identity)
        logger.info("issued device identity", persisted=self._path is not None)
        return identity

    def _persist(self, path: Path, identity: str) -> None:
        """Write the identity via temp-file-then-rename so a crash never leaves a partial file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp", prefix=".identity_")
        fd_owned = True
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                fd_owned = False  # os.fdopen took ownership; it will close fd
                f.write(identity)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, _IDENTITY_FILE_MODE)  # noqa: PTH101
            Path(tmp_path).replace(path)
        except BaseException:
            if fd_owned:
                with contextlib.suppress(OSError):
                    os.close(fd)
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise
