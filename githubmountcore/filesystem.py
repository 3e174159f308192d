import dataclasses
import logging
import threading
import time
from collections.abc import Iterable, Iterator
from typing import Optional, Union

import httpx

from .fetchers import GitTreeFetcher, ReleasesFetcher, TarballFetcher
from .remote.content import HttpContentFetcher
from .remote.graphql import DEFAULT_GRAPHQL_URL, GraphQLMetadataProvider
from .remote.provider import ContentFetcher, MetadataProvider, RepositoryInfo
from .tree.handles import DirectoryHandle, DirEntry, FileHandle, FileInfo
from .tree.nodes import Directory
from .tree.resolver import ROOT_PATH, find, split_path

logger = logging.getLogger(__name__)

DEFAULT_RAW_URL = 'https://raw.githubusercontent.com'
DEFAULT_THRESHOLD_KIB = 10 * 1024
DEFAULT_TIMEOUT = 60.0

GIT_DIRECTORY_NAME = 'git'
RELEASES_DIRECTORY_NAME = 'releases'


@dataclasses.dataclass
class RepositoryInput:
    # fmt: off
    org           : str
    repo          : str  = ''  # All repositories of the organization if empty
    branch        : str  = ''  # The default branch if empty
    allowArchived : bool = False
    # fmt: on


class GitHubFileSystem:
    """
    Read-only filesystem presenting organizations, repositories, branches, and releases:

        <org>/<repo>/git/<branch>/<path inside the branch>
        <org>/<repo>/releases/<tag>/description.md
        <org>/<repo>/releases/<tag>/<asset>

    The scaffolding down to the branch directories is created by connect, which is called on the first access.
    Branch contents are fetched on demand: repositories smaller than thresholdKiB are imported from their
    tarball at once, larger ones are listed directory by directory.
    """

    def __init__(
        self,
        *,
        graphqlUrl: str = DEFAULT_GRAPHQL_URL,
        rawUrl: str = DEFAULT_RAW_URL,
        client: Optional[httpx.Client] = None,
        token: Optional[str] = None,
        thresholdKiB: int = DEFAULT_THRESHOLD_KIB,
        entrySizes: bool = True,
        metadataProvider: Optional[MetadataProvider] = None,
        contentFetcher: Optional[ContentFetcher] = None,
        orgs: Iterable[Union[str, tuple[str, bool]]] = (),
        repos: Iterable[tuple[str, ...]] = (),
    ) -> None:
        self._ownsClient = client is None
        if client is None:
            headers = {'Authorization': f"bearer {token}"} if token else {}
            client = httpx.Client(headers=headers, follow_redirects=True, timeout=DEFAULT_TIMEOUT)
        self.client = client

        self.rawUrl = rawUrl.rstrip('/')
        self.thresholdKiB = thresholdKiB
        self.metadataProvider = (
            metadataProvider
            if metadataProvider is not None
            else GraphQLMetadataProvider(graphqlUrl, client, entrySizes=entrySizes)
        )
        self.contentFetcher = contentFetcher if contentFetcher is not None else HttpContentFetcher(client)

        self.inputs: list[RepositoryInput] = []
        for org in orgs:
            if isinstance(org, str):
                self.add_org(org)
            else:
                self.add_org(*org)
        for repo in repos:
            self.add_repo(*repo)

        self.importLock = threading.RLock()
        self._connectLock = threading.Lock()
        self.connected = False
        self.root = Directory(ROOT_PATH, filesystem=self, mtime=time.time())

    def __enter__(self):
        return self

    def __exit__(self, exception_type, exception_value, exception_traceback):
        self.close()

    def close(self) -> None:
        if self._ownsClient:
            self.client.close()

    def add_org(self, org: str, allowArchived: bool = False) -> None:
        """Adds all repositories of an organization or user with their default branches."""
        self.inputs.append(RepositoryInput(org, allowArchived=allowArchived))

    def add_repo(self, org: str, repo: str, *branches: str) -> None:
        """Adds a single repository, which is shown even when archived, with the given or the default branch."""
        for branch in branches or ('',):
            self.inputs.append(RepositoryInput(org, repo, branch, allowArchived=True))

    def connect(self) -> None:
        """
        Creates the scaffolding for all configured inputs. Organizations are queried before single repositories.
        This is done only once successfully. After a failure, the next call tries again.
        """
        with self._connectLock:
            if self.connected:
                return

            for repositoryInput in self.inputs:
                if not repositoryInput.repo:
                    self._add_organization(repositoryInput)
            for repositoryInput in self.inputs:
                if repositoryInput.repo:
                    info = self.metadataProvider.repository(repositoryInput.org, repositoryInput.repo)
                    if info is None:
                        logger.warning("Repository %s/%s does not exist", repositoryInput.org, repositoryInput.repo)
                        continue
                    self._add_repository(repositoryInput, info)

            self.connected = True

    def _add_organization(self, repositoryInput: RepositoryInput) -> None:
        cursor = None
        while True:
            page = self.metadataProvider.repositories(repositoryInput.org, cursor)
            for info in page.items:
                self._add_repository(repositoryInput, info)
            if not page.hasNextPage:
                break
            cursor = page.endCursor

    def _add_repository(self, repositoryInput: RepositoryInput, info: RepositoryInfo) -> None:
        org = repositoryInput.org
        if info.isArchived and not repositoryInput.allowArchived:
            logger.info("Skipping archived repository %s", info.nameWithOwner)
            return
        if info.isDisabled:
            logger.info("Skipping disabled repository %s", info.nameWithOwner)
            return
        if info.nameWithOwner != f"{org}/{info.name}":
            # Happens for renamed or transferred repositories, which the API silently redirects to.
            logger.info("Skipping repository %s/%s, which resolved to %s", org, info.name, info.nameWithOwner)
            return

        orgDirectory = self.root.mkdir([org], org=org, pathTransparent=True)
        repoDirectory = orgDirectory.mkdir([info.name], repo=info.name, pathTransparent=True)
        gitDirectory = repoDirectory.mkdir([GIT_DIRECTORY_NAME], pathTransparent=True)

        branch = repositoryInput.branch or info.defaultBranch
        if branch:
            bulk = info.diskUsage < self.thresholdKiB
            logger.debug(
                "Adding %s branch %s with %s fetcher (%d KiB)",
                info.nameWithOwner,
                branch,
                "tarball" if bulk else "listing",
                info.diskUsage,
            )
            # Branch names like release/1.x become nested folders so that every segment stays a valid path.
            *folders, leaf = branch.split('/')
            gitDirectory.mkdir(folders, pathTransparent=True).mkdir(
                [leaf], branch=branch, pathTransparent=True, fetcher=TarballFetcher() if bulk else GitTreeFetcher()
            )
        else:
            logger.info("Repository %s has no branch to show", info.nameWithOwner)

        if info.releaseCount > 0:
            repoDirectory.mkdir([RELEASES_DIRECTORY_NAME], fetcher=ReleasesFetcher())

    def _find(self, path: str):
        parts = split_path(path)
        self.connect()
        directory, file = find(self.root, parts)
        return parts, directory, file

    def open(self, path: str) -> Union[DirectoryHandle, FileHandle]:
        """Opens a directory for listing or a file for reading. Files are downloaded in full on open."""
        parts, directory, file = self._find(path)
        name = parts[-1] if parts else ROOT_PATH
        if file is not None:
            return file.open_handle(name)
        return directory.open_handle(name)

    def stat(self, path: str) -> FileInfo:
        """The size of files that have not been opened yet is only advisory."""
        parts, directory, file = self._find(path)
        name = parts[-1] if parts else ROOT_PATH
        return file.info(name) if file is not None else directory.info(name)

    def list(self, path: str) -> Optional[list[DirEntry]]:
        """Returns the sorted entries of a directory or None if the path is a file."""
        handle = self.open(path)
        if isinstance(handle, FileHandle):
            handle.close()
            return None
        with handle:
            return handle.read_dir(0).entries

    def read_bytes(self, path: str) -> bytes:
        handle = self.open(path)
        if isinstance(handle, DirectoryHandle):
            handle.close()
            raise IsADirectoryError(f"read {path}: is a directory")
        with handle:
            return handle.read()

    def walk(self, top: str = ROOT_PATH) -> Iterator[tuple[str, DirEntry]]:
        """
        Yields (path, entry) for top and everything below it in lexical pre-order.
        Directories reachable through symbolic links to one of their ancestors are not descended into.
        """
        parts, directory, file = self._find(top)
        name = parts[-1] if parts else ROOT_PATH
        if file is not None:
            yield top, file.to_dir_entry(name)
            return

        yield top, directory.to_dir_entry(name)
        yield from self._walk(top, directory, ())

    def _walk(self, path: str, directory: Directory, ancestors: tuple[int, ...]) -> Iterator[tuple[str, DirEntry]]:
        ancestors = (*ancestors, id(directory))
        with directory.open_handle() as handle:
            entries = handle.read_dir(0).entries

        for entry in entries:
            childPath = entry.name if path == ROOT_PATH else f"{path}/{entry.name}"
            yield childPath, entry
            if not entry.is_dir():
                continue

            child = directory.get_child(entry.name)
            if not isinstance(child, Directory):
                continue
            if id(child) in ancestors:
                logger.warning("Not descending into %s because it links to one of its parent directories", childPath)
                continue

            child.fetch()
            yield from self._walk(childPath, child, ancestors)
