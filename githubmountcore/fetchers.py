import contextlib
import logging
import stat
import urllib.parse
from typing import Any

from .compressions import open_archive_stream
from .remote.provider import MODE_DIRECTORY, MODE_EXECUTABLE, MODE_FILE, MODE_SUBMODULE, MODE_SYMLINK
from .tree.nodes import Directory, Fetcher
from .tree.tarball import import_tarball
from .utils import UnsupportedFormatError, overrides

logger = logging.getLogger(__name__)

DESCRIPTION_FILE_NAME = 'description.md'


class GitTreeFetcher(Fetcher):
    """
    Lists a single directory of a branch via the metadata API. Subdirectories get their own fetcher so that
    large repositories are only queried where they are actually browsed. File contents are downloaded
    from the raw content host on open.
    """

    @overrides(Fetcher)
    def populate(self, filesystem: Any, directory: Directory) -> None:
        path = '/'.join(directory.path)
        entries = filesystem.metadataProvider.tree(directory.org, directory.repo, directory.branch, path)

        for entry in entries:
            if entry.mode in (MODE_FILE, MODE_EXECUTABLE):
                url = '/'.join(
                    urllib.parse.quote(part)
                    for part in (directory.org, directory.repo, directory.branch, *directory.path, entry.name)
                )
                directory.add_file(
                    entry.name,
                    url=f"{filesystem.rawUrl}/{url}",
                    size=entry.size,
                    mode=stat.S_IFREG | (0o755 if entry.mode == MODE_EXECUTABLE else 0o644),
                )
            elif entry.mode == MODE_DIRECTORY:
                directory.new_dir(entry.name, fetcher=GitTreeFetcher())
            elif entry.mode == MODE_SUBMODULE:
                logger.debug("Skipping submodule %s in %s", entry.name, directory.full_path())
            elif entry.mode == MODE_SYMLINK:
                logger.info(
                    "Skipping symbolic link %s in %s, which cannot be resolved without the tarball",
                    entry.name,
                    directory.full_path(),
                )
            else:
                raise UnsupportedFormatError(
                    f"Entry {entry.name} in {directory.full_path()} has unsupported mode {entry.mode:o}"
                )


class TarballFetcher(Fetcher):
    """Downloads the archive of a branch and imports the whole subtree in one pass."""

    @overrides(Fetcher)
    def exclusive(self, filesystem: Any):
        importLock = getattr(filesystem, 'importLock', None)
        return importLock if importLock is not None else contextlib.nullcontext()

    @overrides(Fetcher)
    def populate(self, filesystem: Any, directory: Directory) -> None:
        url = filesystem.metadataProvider.tarball_url(directory.org, directory.repo, directory.branch)
        logger.info("Importing %s/%s branch %s from %s", directory.org, directory.repo, directory.branch, url)

        download = filesystem.contentFetcher.fetch(url)
        with contextlib.closing(download.stream), contextlib.closing(
            open_archive_stream(download.stream, download.contentType)
        ) as archive:
            import_tarball(directory, archive)


class ReleasesFetcher(Fetcher):
    """Creates one directory per published release containing its description and its assets."""

    @overrides(Fetcher)
    def populate(self, filesystem: Any, directory: Directory) -> None:
        cursor = None
        while True:
            page = filesystem.metadataProvider.releases(directory.org, directory.repo, cursor)
            for release in page.items:
                # Tags containing slashes are shown as nested folders.
                releaseDirectory = directory.mkdir(release.tag.split('/'), mtime=release.createdAt)
                releaseDirectory.add_file(
                    DESCRIPTION_FILE_NAME, content=release.description.encode(), mtime=release.createdAt
                )
                for asset in release.assets:
                    releaseDirectory.add_file(asset.name, url=asset.downloadUrl, size=asset.size, mtime=release.createdAt)

            if not page.hasNextPage:
                break
            cursor = page.endCursor
