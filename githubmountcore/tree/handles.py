import dataclasses
import io
import stat
import threading
from collections.abc import Iterable
from typing import NamedTuple, Optional

from ..utils import ClosedError, overrides

# Nominal size reported for every directory, like most block-based filesystems do.
DIRECTORY_SIZE = 4096


@dataclasses.dataclass(frozen=True)
class FileInfo:
    # fmt: off
    name  : str
    size  : int
    mtime : float
    mode  : int
    # fmt: on

    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)


@dataclasses.dataclass(frozen=True)
class DirEntry:
    """A single entry of a directory listing as captured at the time the directory was opened."""

    info: FileInfo

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def mode(self) -> int:
        return self.info.mode

    def is_dir(self) -> bool:
        return self.info.is_dir()


class ReadDirResult(NamedTuple):
    entries: list[DirEntry]
    eof: bool


class DirectoryHandle:
    """
    Immutable snapshot of a directory's children taken when the directory was opened.
    Later changes to the tree are not reflected. All operations are serialized with a per-handle lock.
    """

    def __init__(self, info: FileInfo, entries: Iterable[DirEntry]) -> None:
        self._lock = threading.Lock()
        self._info = info
        self._entries = tuple(sorted(entries, key=lambda entry: entry.name))
        self._cursor = 0
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, exception_type, exception_value, exception_traceback):
        if not self._closed:
            self.close()

    @property
    def name(self) -> str:
        return self._info.name

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise ClosedError(f"{operation} {self._info.name}: directory handle is already closed")

    def stat(self) -> FileInfo:
        with self._lock:
            self._check_open('stat')
            return self._info

    def read(self, size: int = -1) -> bytes:
        with self._lock:
            self._check_open('read')
            raise IsADirectoryError(f"read {self._info.name}: is a directory")

    def read_dir(self, n: int = -1) -> ReadDirResult:
        """
        Returns up to n entries starting at the cursor and advances the cursor.
        For n <= 0, all remaining entries are returned and eof is always False, even when nothing remains.
        For n > 0, eof is True when the cursor was already at the end or reached it with this call.
        """
        with self._lock:
            self._check_open('readdir')

            if n <= 0:
                entries = list(self._entries[self._cursor :])
                self._cursor = len(self._entries)
                return ReadDirResult(entries, False)

            entries = list(self._entries[self._cursor : self._cursor + n])
            self._cursor += len(entries)
            return ReadDirResult(entries, self._cursor >= len(self._entries))

    def close(self) -> None:
        with self._lock:
            self._check_open('close')
            self._closed = True
            self._entries = ()


class FileHandle(io.RawIOBase):
    """Read-only, seekable view onto the fully downloaded content of a file."""

    def __init__(self, info: FileInfo, content: bytes) -> None:
        io.RawIOBase.__init__(self)

        self._lock = threading.Lock()
        self._info = info
        self._content: Optional[bytes] = content
        self.offset = 0

    def __enter__(self):
        return self

    def __exit__(self, exception_type, exception_value, exception_traceback):
        if not self.closed:
            self.close()

    @property
    def name(self) -> str:
        return self._info.name

    def _check_open(self, operation: str) -> bytes:
        if self._content is None:
            raise ClosedError(f"{operation} {self._info.name}: file handle is already closed")
        return self._content

    def stat(self) -> FileInfo:
        with self._lock:
            self._check_open('stat')
            return self._info

    @overrides(io.RawIOBase)
    def close(self) -> None:
        with self._lock:
            self._check_open('close')
            self._content = None
        super().close()

    @overrides(io.RawIOBase)
    def seekable(self) -> bool:
        return True

    @overrides(io.RawIOBase)
    def readable(self) -> bool:
        return True

    @overrides(io.RawIOBase)
    def readinto(self, buffer):
        with memoryview(buffer) as view, view.cast("B") as byteView:  # type: ignore
            readBytes = self.read(len(byteView))
            byteView[: len(readBytes)] = readBytes
        return len(readBytes)

    @overrides(io.RawIOBase)
    def read(self, size: int = -1) -> bytes:
        with self._lock:
            content = self._check_open('read')
            end = len(content) if size is None or size < 0 else min(len(content), self.offset + size)
            result = content[self.offset : end] if end > self.offset else b''
            self.offset += len(result)
            return result

    @overrides(io.RawIOBase)
    def readall(self) -> bytes:
        return self.read(-1)

    @overrides(io.RawIOBase)
    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        with self._lock:
            content = self._check_open('seek')
            if whence == io.SEEK_CUR:
                newOffset = self.offset + offset
            elif whence == io.SEEK_END:
                newOffset = len(content) + offset
            elif whence == io.SEEK_SET:
                newOffset = offset
            else:
                raise ValueError(f"Invalid whence value: {whence}")

            if newOffset < 0:
                raise ValueError("Trying to seek before the start of the file!")
            self.offset = newOffset
            return self.offset

    @overrides(io.RawIOBase)
    def tell(self) -> int:
        with self._lock:
            self._check_open('tell')
            return self.offset
