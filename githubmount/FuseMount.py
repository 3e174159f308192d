import errno
import logging
import os
import threading
from typing import Any

from githubmountcore.filesystem import GitHubFileSystem
from githubmountcore.tree.handles import DirectoryHandle, FileHandle, FileInfo
from githubmountcore.utils import GithubMountError, InvalidPathError, NotExistError, ceil_div, overrides

from .fuse import fuse

logger = logging.getLogger(__name__)


class FuseMount(fuse.Operations):
    """
    This class implements the fusepy interface in order to create a read-only mounted file system view
    to a GitHubFileSystem. Files are downloaded in full on open and served from memory until released.

    All path arguments for overridden fusepy methods do have a leading slash ('/')!
    """

    # Use a relatively large minimum 256 KiB block size to get filesystem users to use larger reads.
    MINIMUM_BLOCK_SIZE = 256 * 1024

    use_ns = True

    def __init__(self, fileSystem: GitHubFileSystem, mountPoint: str) -> None:
        self.fileSystem = fileSystem
        self.mountPoint = os.path.realpath(mountPoint)  # Strip trailing slashes and normalizes.

        self.openedFiles: dict[int, FileHandle] = {}
        self.lastFileHandle: int = 0  # It will be incremented before being returned. It can't hurt to never return 0.
        self.handleLock = threading.Lock()

        self.uid = os.getuid() if hasattr(os, 'getuid') else 0
        self.gid = os.getgid() if hasattr(os, 'getgid') else 0

    def __enter__(self):
        return self

    def __exit__(self, exception_type, exception_value, exception_traceback):
        self._close()

    def _close(self) -> None:
        with self.handleLock:
            openedFiles = list(self.openedFiles.values())
            self.openedFiles.clear()
        for openedFile in openedFiles:
            if not openedFile.closed:
                openedFile.close()

    @staticmethod
    def _to_tree_path(path: str) -> str:
        return path.strip('/') or '.'

    @staticmethod
    def _to_fuse_error(exception: Exception) -> fuse.FuseOSError:
        if isinstance(exception, NotExistError):
            return fuse.FuseOSError(errno.ENOENT)
        if isinstance(exception, InvalidPathError):
            return fuse.FuseOSError(errno.EINVAL)
        logger.error("Exception: %s", exception, exc_info=logger.isEnabledFor(logging.DEBUG))
        return fuse.FuseOSError(errno.EIO)

    def _add_new_handle(self, handle: FileHandle) -> int:
        with self.handleLock:
            self.lastFileHandle += 1
            self.openedFiles[self.lastFileHandle] = handle
            return self.lastFileHandle

    def _lookup(self, path: str) -> FileInfo:
        try:
            return self.fileSystem.stat(self._to_tree_path(path))
        except GithubMountError as exception:
            raise self._to_fuse_error(exception) from exception

    @overrides(fuse.Operations)
    def getattr(self, path: str, fh=None) -> dict[str, Any]:
        fileInfo = self._lookup(path)
        return {
            # dictionary keys: https://pubs.opengroup.org/onlinepubs/007904875/basedefs/sys/stat.h.html
            'st_size': fileInfo.size,
            'st_mode': fileInfo.mode,
            'st_uid': self.uid,
            'st_gid': self.gid,
            'st_mtime': int(fileInfo.mtime * 1e9),
            'st_nlink': 2 if fileInfo.is_dir() else 1,
            'st_blksize': FuseMount.MINIMUM_BLOCK_SIZE,
            # Number of 512 B (!) blocks irrespective of st_blksize!
            'st_blocks': ceil_div(fileInfo.size, 512),
        }

    @overrides(fuse.Operations)
    def readdir(self, path: str, fh):
        '''
        Can return either a list of names, or a list of (name, attrs, offset)
        tuples. attrs is a dict as in getattr.
        '''
        try:
            entries = self.fileSystem.list(self._to_tree_path(path))
        except GithubMountError as exception:
            raise self._to_fuse_error(exception) from exception
        if entries is None:
            raise fuse.FuseOSError(errno.ENOTDIR)

        yield '.'
        yield '..'
        for entry in entries:
            yield entry.name, {'st_mode': entry.mode}, 0

    @overrides(fuse.Operations)
    def open(self, path: str, flags: int) -> int:
        """Returns file handle of opened path."""
        if flags & (os.O_WRONLY | os.O_RDWR):
            raise fuse.FuseOSError(errno.EROFS)

        try:
            handle = self.fileSystem.open(self._to_tree_path(path))
        except GithubMountError as exception:
            raise self._to_fuse_error(exception) from exception

        if isinstance(handle, DirectoryHandle):
            handle.close()
            raise fuse.FuseOSError(errno.EISDIR)
        return self._add_new_handle(handle)

    @overrides(fuse.Operations)
    def release(self, path: str, fh) -> int:
        with self.handleLock:
            openedFile = self.openedFiles.pop(fh, None)
        if openedFile is None:
            raise fuse.FuseOSError(errno.ESTALE)

        openedFile.close()
        return 0

    @overrides(fuse.Operations)
    def read(self, path: str, size: int, offset: int, fh) -> bytes:
        with self.handleLock:
            openedFile = self.openedFiles.get(fh)
        if openedFile is None:
            raise fuse.FuseOSError(errno.EBADF)

        try:
            openedFile.seek(offset)
            return openedFile.read(size)
        except GithubMountError as exception:
            raise self._to_fuse_error(exception) from exception

    @overrides(fuse.Operations)
    def statfs(self, path: str):
        return {
            'f_bsize': FuseMount.MINIMUM_BLOCK_SIZE,
            'f_frsize': FuseMount.MINIMUM_BLOCK_SIZE,
            'f_namemax': 255,
            'f_flag': os.ST_RDONLY if hasattr(os, 'ST_RDONLY') else 1,
        }

    @overrides(fuse.Operations)
    def readlink(self, path: str) -> str:
        # Symbolic links are resolved while importing, so there are no link nodes.
        raise fuse.FuseOSError(errno.EINVAL)
