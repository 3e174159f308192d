import dataclasses
from abc import ABC, abstractmethod
from typing import IO, Generic, Optional, TypeVar

T = TypeVar('T')

# Mode values reported for entries of a git tree.
MODE_FILE = 0o100644
MODE_EXECUTABLE = 0o100755
MODE_DIRECTORY = 0o040000
MODE_SUBMODULE = 0o160000
MODE_SYMLINK = 0o120000


@dataclasses.dataclass
class RepositoryInfo:
    # fmt: off
    name          : str
    nameWithOwner : str
    isArchived    : bool = False
    isDisabled    : bool = False
    defaultBranch : str  = ''
    releaseCount  : int  = 0
    diskUsage     : int  = 0  # KiB
    # fmt: on


@dataclasses.dataclass
class TreeEntry:
    # fmt: off
    name : str
    mode : int
    size : Optional[int] = None
    # fmt: on


@dataclasses.dataclass
class ReleaseAsset:
    # fmt: off
    name        : str
    size        : int
    downloadUrl : str
    # fmt: on


@dataclasses.dataclass
class Release:
    # fmt: off
    tag         : str
    description : str                = ''
    createdAt   : float              = 0.0
    assets      : list[ReleaseAsset] = dataclasses.field(default_factory=list)
    # fmt: on


@dataclasses.dataclass
class Page(Generic[T]):
    items: list[T]
    endCursor: Optional[str] = None
    hasNextPage: bool = False


@dataclasses.dataclass
class Download:
    stream: IO[bytes]
    contentType: str = ''


class MetadataProvider(ABC):
    """Queries repository metadata. Implementations raise RemoteFetchError for failed or malformed queries."""

    @abstractmethod
    def repository(self, owner: str, repo: str) -> Optional[RepositoryInfo]:
        """Returns None if no such repository exists."""

    @abstractmethod
    def repositories(self, owner: str, cursor: Optional[str] = None) -> Page[RepositoryInfo]:
        """Returns one page of the repositories owned by an organization or user."""

    @abstractmethod
    def tree(self, owner: str, repo: str, branch: str, path: str) -> list[TreeEntry]:
        """Lists the entries of one directory of a branch. The root directory has the empty path."""

    @abstractmethod
    def releases(self, owner: str, repo: str, cursor: Optional[str] = None) -> Page[Release]:
        """Returns one page of published releases, i.e., without drafts and prereleases."""

    @abstractmethod
    def tarball_url(self, owner: str, repo: str, branch: str) -> str:
        """Returns the location of the TAR archive of the branch head."""


class ContentFetcher(ABC):
    @abstractmethod
    def fetch(self, url: str) -> Download:
        """Downloads the given URL. Raises RemoteFetchError for non-success statuses and transport errors."""
