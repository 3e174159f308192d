import contextlib
import logging
import stat
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Optional, Union

from ..utils import GithubMountError, NotExistError, RemoteFetchError
from .handles import DIRECTORY_SIZE, DirectoryHandle, DirEntry, FileHandle, FileInfo

logger = logging.getLogger(__name__)

DEFAULT_DIRECTORY_MODE = stat.S_IFDIR | 0o755
DEFAULT_FILE_MODE = stat.S_IFREG | 0o644


def _with_file_type(mode: Optional[int], fileType: int, default: int) -> int:
    if mode is None:
        return default
    # Accept plain permission bits like 0o755 as well as full st_mode values.
    return mode if stat.S_IFMT(mode) else fileType | stat.S_IMODE(mode)


class Fetcher(ABC):
    """
    Deferred population of a directory. It is invoked at most once successfully, the first time
    a path resolution walks through the directory it is attached to.
    """

    @abstractmethod
    def populate(self, filesystem: Any, directory: 'Directory') -> None:
        """Adds the children of the given directory. Any exception leaves the fetcher attached for a retry."""

    def exclusive(self, filesystem: Any):
        """
        Returns a context manager that is entered before the directory lock is acquired.
        Fetchers that mutate more than their own directory use this to serialize with each other.
        """
        return contextlib.nullcontext()


class Directory:
    """
    A directory node. Children are either created eagerly by the builder methods, or lazily by the
    attached fetcher when a path resolution walks through this directory for the first time.
    """

    def __init__(
        self,
        name: str,
        parent: Optional['Directory'] = None,
        filesystem: Any = None,
        *,
        org: Optional[str] = None,
        repo: Optional[str] = None,
        branch: Optional[str] = None,
        fetcher: Optional[Fetcher] = None,
        pathTransparent: bool = False,
        mtime: Optional[float] = None,
        mode: Optional[int] = None,
    ) -> None:
        self.lock = threading.RLock()
        self.name = name
        self.parent = parent
        self.filesystem = filesystem if filesystem is not None or parent is None else parent.filesystem

        self.org = org if org is not None else (parent.org if parent else '')
        self.repo = repo if repo is not None else (parent.repo if parent else '')
        self.branch = branch if branch is not None else (parent.branch if parent else '')

        # Segments relative to the nearest path-transparent ancestor, e.g., the path inside a branch.
        self.pathTransparent = pathTransparent
        self.path: list[str] = [] if parent is None or pathTransparent else [*parent.path, name]

        self.mode = _with_file_type(mode, stat.S_IFDIR, DEFAULT_DIRECTORY_MODE)
        self.mtime = mtime if mtime is not None else (parent.mtime if parent else time.time())
        self.fetcher = fetcher
        self.children: dict[str, Node] = {}

    def __repr__(self) -> str:
        return f"Directory({self.full_path() or '.'!r})"

    def new_dir(self, name: str, **options) -> 'Directory':
        """Creates a new subdirectory, replacing any existing child with the same name."""
        directory = Directory(name, self, **options)
        with self.lock:
            self.children[name] = directory
        return directory

    def mkdir(self, path: Union[str, Sequence[str]], **options) -> 'Directory':
        """
        Ensures that the chain of directories exists and returns the last one. Only the missing
        suffix is created and the options are only applied to newly created directories.
        """
        parts = path.split('/') if isinstance(path, str) else path

        current = self
        for part in parts:
            if not part:
                continue
            with current.lock:
                child = current.children.get(part)
                if child is None:
                    child = current.new_dir(part, **options)
                elif not isinstance(child, Directory):
                    raise NotExistError(
                        f"mkdir {current.full_path() or '.'}/{part}: a file with this name already exists"
                    )
            current = child
        return current

    def add_file(self, name: str, **options) -> 'File':
        """Inserts a new file or replaces an existing child with the same name."""
        file = File(name, self, **options)
        with self.lock:
            self.children[name] = file
        return file

    def link(self, name: str, node: 'Node') -> None:
        """Makes an existing node, which keeps its original parent, also reachable under this directory."""
        with self.lock:
            self.children[name] = node

    def get_child(self, name: str) -> Optional['Node']:
        with self.lock:
            return self.children.get(name)

    def root(self) -> 'Directory':
        directory = self
        while directory.parent is not None:
            directory = directory.parent
        return directory

    def full_path(self) -> str:
        names = []
        directory = self
        while directory.parent is not None:
            names.append(directory.name)
            directory = directory.parent
        return '/'.join(reversed(names))

    def info(self, name: Optional[str] = None) -> FileInfo:
        return FileInfo(name=name or self.name, size=DIRECTORY_SIZE, mtime=self.mtime, mode=self.mode)

    def to_dir_entry(self, name: Optional[str] = None) -> DirEntry:
        return DirEntry(self.info(name))

    def fetch(self) -> None:
        """Runs the attached fetcher, if any, and detaches it after it succeeded."""
        # Waits for a fetch in progress, which might fail and reattach its fetcher.
        with self.lock:
            fetcher = self.fetcher
        if fetcher is None:
            return

        with fetcher.exclusive(self.filesystem), self.lock:
            # Another thread might have finished the fetch while we were waiting for the lock.
            fetcher = self.fetcher
            if fetcher is None:
                return

            path = self.full_path() or '.'
            logger.debug("Fetching contents of %s with %s", path, type(fetcher).__name__)
            try:
                fetcher.populate(self.filesystem, self)
            except GithubMountError as exception:
                self.fetcher = fetcher
                logger.info("Failed to fetch %s: %s", path, exception, exc_info=logger.isEnabledFor(logging.DEBUG))
                raise
            except Exception as exception:
                self.fetcher = fetcher
                logger.info("Failed to fetch %s: %s", path, exception, exc_info=logger.isEnabledFor(logging.DEBUG))
                raise RemoteFetchError(f"fetch {path}: {exception}") from exception

            self.fetcher = None

    def open_handle(self, name: Optional[str] = None) -> DirectoryHandle:
        with self.lock:
            entries = [child.to_dir_entry(childName) for childName, child in self.children.items()]
        return DirectoryHandle(self.info(name), entries)


class File:
    """
    A file node. The content is either known inline, e.g., when imported from a tarball,
    or downloaded in full from the URL on the first open.
    """

    def __init__(
        self,
        name: str,
        parent: Directory,
        *,
        content: Optional[bytes] = None,
        url: Optional[str] = None,
        size: Optional[int] = None,
        mtime: Optional[float] = None,
        mode: Optional[int] = None,
    ) -> None:
        self.lock = threading.Lock()
        self.name = name
        self.parent = parent
        self.filesystem = parent.filesystem
        self.org = parent.org
        self.repo = parent.repo
        self.branch = parent.branch

        self.url = url
        self.content: Optional[bytes] = None
        # Only a hint as long as the content is unknown. Some remote APIs do not report sizes at all.
        self.size = 0
        if content is not None:
            self.content = bytes(content)
            self.size = len(self.content)
        elif size is not None:
            self.size = size

        self.mode = _with_file_type(mode, stat.S_IFREG, DEFAULT_FILE_MODE)
        self.mtime = mtime if mtime is not None else parent.mtime

    def __repr__(self) -> str:
        return f"File({self.name!r}, size={self.size}, url={self.url!r})"

    def info(self, name: Optional[str] = None) -> FileInfo:
        return FileInfo(name=name or self.name, size=self.size, mtime=self.mtime, mode=self.mode)

    def to_dir_entry(self, name: Optional[str] = None) -> DirEntry:
        return DirEntry(self.info(name))

    def _download(self) -> bytes:
        if not self.url:
            if self.size == 0:
                return b''
            raise RemoteFetchError(f"open {self.name}: file has neither content nor a download location")

        if self.filesystem is None or getattr(self.filesystem, 'contentFetcher', None) is None:
            raise RemoteFetchError(f"open {self.name}: no content fetcher configured to download {self.url}")

        logger.debug("Downloading %s for %s", self.url, self.name)
        download = self.filesystem.contentFetcher.fetch(self.url)
        try:
            return download.stream.read()
        finally:
            download.stream.close()

    def open_handle(self, name: Optional[str] = None) -> FileHandle:
        with self.lock:
            if self.content is None or len(self.content) != self.size:
                self.content = self._download()
                self.size = len(self.content)
            return FileHandle(self.info(name), self.content)


Node = Union[Directory, File]
