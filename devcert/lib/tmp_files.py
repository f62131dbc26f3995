"""Run-scoped temporary file paths for PKI working material."""

import asyncio
import secrets
import string
import tempfile
from pathlib import Path

from .logging_config import LOGGER
from .models import EphemeralFile

_BASE36 = string.digits + string.ascii_lowercase


def _random_token(length: int = 10) -> str:
    """Return a random base-36 token."""
    return "".join(secrets.choice(_BASE36) for _ in range(length))


class TempFileRegistry:
    """Hands out unique paths under a random prefix and deletes them on clear().

    Paths are only reserved, never created: the component that allocated a path
    is responsible for writing it. ``clear()`` removes whatever exists.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        """Initialize an empty registry.

        Args:
            base_dir: Directory holding the working files, defaults to the host temp dir
        """
        self.base_dir = Path(base_dir) if base_dir is not None else Path(tempfile.gettempdir())
        self._prefix: str | None = None
        self._files: list[EphemeralFile] = []

    @property
    def prefix(self) -> str | None:
        return self._prefix

    @property
    def files(self) -> list[EphemeralFile]:
        return list(self._files)

    def allocate(self, name: str) -> Path:
        """Reserve a path for ``name``, suffixing 1, 2, ... on repeats.

        Args:
            name: Human readable file name, e.g. ``key`` or ``example.test.crt``

        Returns:
            Path unique within the current registry session
        """
        if self._prefix is None:
            self._prefix = _random_token()
            LOGGER.debug("Started temp file session %s in %s", self._prefix, self.base_dir)

        taken = {entry.path for entry in self._files}
        base = self.base_dir / f"{self._prefix}{name}"
        candidate = base
        index = 0
        while candidate in taken:
            index += 1
            candidate = base.with_name(f"{base.name}{index}")

        self._files.append(EphemeralFile(name=name, path=candidate))
        return candidate

    def track(self, path: Path) -> Path:
        """Register a file another program derives from an allocated path.

        ``openssl ca`` leaves ``index.txt.attr`` and ``serial.old`` style siblings
        behind; tracking them makes ``clear()`` remove them too.
        """
        path = Path(path)
        if path not in {entry.path for entry in self._files}:
            self._files.append(EphemeralFile(name=path.name, path=path))
        return path

    async def clear(self) -> None:
        """Delete every allocated file and reset the session.

        Missing files are not an error. Other OS errors are logged and skipped so
        that one stubborn file never keeps the rest on disk.
        """
        files, self._files, self._prefix = self._files, [], None
        for entry in files:
            try:
                await asyncio.to_thread(_remove, entry.path)
            except FileNotFoundError:
                continue
            except OSError as e:
                LOGGER.warning("Could not remove temp file %s: %s", entry.path, e)


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except PermissionError:
        # Windows refuses to delete read-only files such as 0o400 keys
        path.chmod(0o600)
        path.unlink()
