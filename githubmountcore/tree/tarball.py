import logging
import posixpath
import stat
import tarfile
from typing import IO

from ..utils import GithubMountError, NotExistError, RemoteFetchError
from .nodes import Directory
from .resolver import find

logger = logging.getLogger(__name__)


def _strip_leading_component(path: str) -> list[str]:
    """Splits an archive member path and removes the top-level folder, e.g., 'repo-sha/src/' -> ['src']."""
    return [part for part in path.split('/') if part and part != '.'][1:]


def _normalize(path: str) -> list[str]:
    """Lexically resolves '.' and '..' segments. Paths leaving the tree root cannot be resolved."""
    parts: list[str] = []
    for part in path.split('/'):
        if part in ('', '.'):
            continue
        if part == '..':
            if not parts:
                raise NotExistError(f"Link target {path} points outside of the tree")
            parts.pop()
        else:
            parts.append(part)
    return parts


def _alias_link(directory: Directory, tarInfo: tarfile.TarInfo) -> None:
    importPath = directory.full_path()
    folder, linkName = posixpath.split(tarInfo.name.rstrip('/'))
    linkFolder = posixpath.join(importPath, *_strip_leading_component(folder))

    if tarInfo.linkname.startswith('/'):
        target = posixpath.join(importPath, tarInfo.linkname.lstrip('/'))
    else:
        target = posixpath.join(linkFolder, tarInfo.linkname)

    root = directory.root()
    try:
        targetDirectory, targetFile = find(root, _normalize(target))
    except NotExistError as exception:
        raise NotExistError(f"Target {tarInfo.linkname} of link {tarInfo.name} does not exist") from exception
    linkDirectory, _ = find(root, _normalize(linkFolder))

    linkDirectory.link(linkName, targetFile if targetFile is not None else targetDirectory)


def import_tarball(directory: Directory, fileobj: IO[bytes]) -> None:
    """
    Materializes a whole subtree below the given directory from an uncompressed TAR stream in one pass.
    The top-level folder of all members is stripped. Hard and symbolic links are aliased to the nodes
    they point to after all other members have been processed so that they may point forward.
    Hard link targets are resolved like relative symbolic link targets, i.e., against the folder of the link.
    GNU tar writes hard link targets relative to the archive root instead, e.g., 'repo-sha/a', which then
    fail to resolve.
    """
    with directory.lock:
        directory.fetcher = None

    importPath = directory.full_path() or '.'
    links: list[tarfile.TarInfo] = []
    fileCount = 0

    try:
        # Stream mode because the remote content may not be seekable.
        with tarfile.open(fileobj=fileobj, mode='r|') as archive:
            for tarInfo in archive:
                if tarInfo.isreg():
                    folder, fileName = posixpath.split(tarInfo.name)
                    folders = _strip_leading_component(folder)
                    leaf = directory.mkdir(folders, mtime=tarInfo.mtime) if folders else directory

                    extracted = archive.extractfile(tarInfo)
                    content = extracted.read() if extracted else b''
                    leaf.add_file(
                        fileName, content=content, mtime=tarInfo.mtime, mode=stat.S_IFREG | (tarInfo.mode & 0o777)
                    )
                    fileCount += 1
                elif tarInfo.isdir():
                    folders = _strip_leading_component(tarInfo.name)
                    if folders:
                        directory.mkdir(folders, mtime=tarInfo.mtime)
                elif tarInfo.issym() or tarInfo.islnk():
                    if tarInfo.islnk():
                        logger.debug(
                            "Resolving hard link %s -> %s relative to its folder", tarInfo.name, tarInfo.linkname
                        )
                    links.append(tarInfo)
                else:
                    logger.debug("Skipping archive member %s with unsupported type %s", tarInfo.name, tarInfo.type)
    except GithubMountError:
        raise
    except (tarfile.TarError, OSError, EOFError) as exception:
        raise RemoteFetchError(f"Failed to import malformed archive into {importPath}: {exception}") from exception

    for tarInfo in links:
        _alias_link(directory, tarInfo)

    logger.info("Imported %d files and %d links into %s", fileCount, len(links), importPath)
