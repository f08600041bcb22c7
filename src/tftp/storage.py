from __future__ import annotations

import errno
from pathlib import Path, PurePosixPath
from typing import Protocol

from .errors import AccessViolation, ErrorCode, FileNotFound, StorageError


class FileStore(Protocol):
    def read_file(self, path: str) -> bytes: ...

    def create_file(self, path: str, data: bytes) -> None: ...


def destination_name(path: str) -> str:
    """
    Name under which a transferred file is stored: the last segment of the
    requested path, with either separator.
    """
    name = PurePosixPath(path.replace("\\", "/")).name
    if name in ("", ".", ".."):
        raise AccessViolation(f"no usable file name in {path!r}")
    return name


class LocalFileStore:
    """
    Files under one directory. Reads may name subdirectories but never leave
    ``root``; writes always land directly in ``root``.
    """

    def __init__(self, root: str | Path = "."):
        self.root = Path(root).resolve()

    def resolve(self, path: str) -> Path:
        candidate = (self.root / path.replace("\\", "/").lstrip("/")).resolve()
        if not candidate.is_relative_to(self.root):
            raise AccessViolation(f"{path!r} is outside the served directory")
        return candidate

    def read_file(self, path: str) -> bytes:
        target = self.resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise FileNotFound(f"file not found: {path}") from None
        except (PermissionError, IsADirectoryError) as exc:
            raise AccessViolation(f"cannot read {path}: {exc.strerror}") from exc
        except OSError as exc:
            raise StorageError(f"cannot read {path}: {exc.strerror}") from exc

    def create_file(self, path: str, data: bytes) -> None:
        target = self.root / destination_name(path)
        try:
            target.write_bytes(data)
        except (PermissionError, IsADirectoryError) as exc:
            raise AccessViolation(f"cannot write {target.name}: {exc.strerror}") from exc
        except OSError as exc:
            code = ErrorCode.DISK_FULL if exc.errno == errno.ENOSPC else ErrorCode.NOT_DEFINED
            raise StorageError(f"cannot write {target.name}: {exc.strerror}", code) from exc
