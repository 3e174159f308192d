import io
import json
import tarfile
from typing import Any, Optional

import httpx

from githubmountcore.filesystem import GitHubFileSystem
from githubmountcore.tree.nodes import Directory

GRAPHQL_URL = 'https://api.github.test/graphql'
RAW_URL = 'https://raw.github.test'
CODELOAD_URL = 'https://codeload.github.test'

DEFAULT_MTIME = 1_600_000_000

SIMPLE_ARCHIVE = [
    ('dir', '2/', None),
    ('file', '2/a', b'a\n'),
    ('file', '2/b', b'bb\n'),
    ('dir', '2/c/', None),
    ('file', '2/c/d', b'ddd\n'),
]

SYMLINK_ARCHIVE = [
    *SIMPLE_ARCHIVE,
    ('symlink', '2/c/b', '../b'),
    ('symlink', '2/c/w', '../a'),
    ('symlink', '2/e', 'c'),
]


def create_tar(members: list[tuple[str, str, Any]], mtime: int = DEFAULT_MTIME) -> bytes:
    """
    Creates an uncompressed TAR archive in memory.
    members: (kind, name, payload) with kind one of file, executable, dir, symlink, hardlink, fifo.
    The payload is the file content for files and the link target for links.
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode='w', format=tarfile.GNU_FORMAT) as archive:
        for kind, name, payload in members:
            tarInfo = tarfile.TarInfo(name)
            tarInfo.mtime = mtime
            if kind in ('file', 'executable'):
                tarInfo.size = len(payload)
                tarInfo.mode = 0o755 if kind == 'executable' else 0o644
                archive.addfile(tarInfo, io.BytesIO(payload))
                continue

            if kind == 'dir':
                tarInfo.type = tarfile.DIRTYPE
                tarInfo.mode = 0o755
            elif kind == 'symlink':
                tarInfo.type = tarfile.SYMTYPE
                tarInfo.linkname = payload
            elif kind == 'hardlink':
                tarInfo.type = tarfile.LNKTYPE
                tarInfo.linkname = payload
            elif kind == 'fifo':
                tarInfo.type = tarfile.FIFOTYPE
            else:
                raise ValueError(f"Unknown member kind: {kind}")
            archive.addfile(tarInfo)
    return buffer.getvalue()


def collect_paths(directory: Directory, prefix: str = '') -> list[str]:
    """Returns all paths below the given directory as seen through its children maps."""
    paths = []
    for name, child in sorted(directory.children.items()):
        path = prefix + name
        paths.append(path)
        if isinstance(child, Directory):
            paths.extend(collect_paths(child, path + '/'))
    return paths


def repository_node(
    owner: str,
    name: str,
    diskUsage: int = 1,
    isArchived: bool = False,
    isDisabled: bool = False,
    defaultBranch: Optional[str] = 'main',
    releaseCount: int = 0,
    nameWithOwner: Optional[str] = None,
) -> dict[str, Any]:
    return {
        'name': name,
        'nameWithOwner': nameWithOwner or f"{owner}/{name}",
        'diskUsage': diskUsage,
        'isArchived': isArchived,
        'isDisabled': isDisabled,
        'defaultBranchRef': {'name': defaultBranch} if defaultBranch else None,
        'releases': {'totalCount': releaseCount},
    }


def release_node(
    tag: str,
    description: str = '',
    assets: Optional[list[tuple[str, int, str]]] = None,
    isDraft: bool = False,
    isPrerelease: bool = False,
    createdAt: str = '2022-09-06T20:21:35Z',
) -> dict[str, Any]:
    return {
        'tag': {'name': tag},
        'isDraft': isDraft,
        'isPrerelease': isPrerelease,
        'createdAt': createdAt,
        'description': description,
        'releaseAssets': {
            'nodes': [{'name': name, 'size': size, 'downloadUrl': url} for name, size, url in assets or []]
        },
    }


class FakeGitHub:
    """In-memory stand-in for the GraphQL API and the download hosts, to be used with httpx.MockTransport."""

    def __init__(self) -> None:
        self.repositories: dict[tuple[str, str], Optional[dict[str, Any]]] = {}
        self.ownerPages: dict[str, list[list[dict[str, Any]]]] = {}
        self.trees: dict[str, list[dict[str, Any]]] = {}
        self.releasePages: dict[tuple[str, str], list[list[dict[str, Any]]]] = {}
        self.tarballUrls: dict[tuple[str, str, str], str] = {}
        self.downloads: dict[str, tuple[int, Optional[str], bytes]] = {}
        self.unreachableHosts: set[str] = set()
        self.graphqlResponses: list[httpx.Response] = []
        self.requests: list[tuple[str, str]] = []

    def add_repository(self, owner: str, name: str, **options) -> dict[str, Any]:
        node = repository_node(owner, name, **options)
        self.repositories[(owner, name)] = node
        return node

    def add_tarball(
        self, owner: str, repo: str, branch: str, content: bytes, contentType: Optional[str] = 'application/x-tar'
    ) -> str:
        url = f"{CODELOAD_URL}/{owner}/{repo}/legacy.tar.gz/refs/heads/{branch}"
        self.tarballUrls[(owner, repo, branch)] = url
        self.downloads[url] = (200, contentType, content)
        return url

    def add_download(self, url: str, content: bytes, status: int = 200, contentType: Optional[str] = None) -> None:
        self.downloads[url] = (status, contentType, content)

    def count(self, kind: str, key: Optional[str] = None) -> int:
        return sum(1 for requestKind, requestKey in self.requests if requestKind == kind and key in (None, requestKey))

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host in self.unreachableHosts:
            raise httpx.ConnectError("Connection refused", request=request)

        if request.method == 'POST' and str(request.url) == GRAPHQL_URL:
            if self.graphqlResponses:
                self.requests.append(('graphql', 'canned'))
                return self.graphqlResponses.pop(0)
            payload = json.loads(request.content)
            return httpx.Response(200, json={'data': self._query(payload['query'], payload['variables'])})

        url = str(request.url)
        self.requests.append(('GET', url))
        if url not in self.downloads:
            return httpx.Response(404, content=b'Not Found')
        status, contentType, content = self.downloads[url]
        headers = {'Content-Type': contentType} if contentType else {}
        return httpx.Response(status, headers=headers, content=content)

    def _paginate(self, pages: list[list[dict[str, Any]]], cursor: Optional[str]) -> dict[str, Any]:
        index = int(cursor or 0)
        return {
            'pageInfo': {'hasNextPage': index + 1 < len(pages), 'endCursor': str(index + 1)},
            'nodes': pages[index] if index < len(pages) else [],
        }

    def _query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        owner = variables.get('owner')
        repo = variables.get('repo')

        if 'repositoryOwner' in query:
            self.requests.append(('repositories', f"{owner}:{variables.get('cursor')}"))
            if owner not in self.ownerPages:
                return {'repositoryOwner': None}
            return {'repositoryOwner': {'repositories': self._paginate(self.ownerPages[owner], variables['cursor'])}}

        if 'object(expression' in query:
            key = f"{owner}/{repo}/{variables['expression']}"
            self.requests.append(('tree', key))
            entries = self.trees.get(key)
            if 'size' not in query and entries is not None:
                entries = [{name: value for name, value in entry.items() if name != 'size'} for entry in entries]
            return {'repository': {'object': None if entries is None else {'entries': entries}}}

        if 'releases(first' in query:
            self.requests.append(('releases', f"{owner}/{repo}:{variables.get('cursor')}"))
            pages = self.releasePages.get((owner, repo), [[]])
            return {'repository': {'releases': self._paginate(pages, variables['cursor'])}}

        if 'ref(qualifiedName' in query:
            branch = variables['ref'].removeprefix('refs/heads/')
            self.requests.append(('tarball', f"{owner}/{repo}/{branch}"))
            url = self.tarballUrls.get((owner, repo, branch))
            return {'repository': {'ref': None if url is None else {'target': {'tarballUrl': url}}}}

        self.requests.append(('repository', f"{owner}/{repo}"))
        return {'repository': self.repositories.get((owner, repo))}

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler), follow_redirects=True)

    def filesystem(self, **options) -> GitHubFileSystem:
        return GitHubFileSystem(graphqlUrl=GRAPHQL_URL, rawUrl=RAW_URL, client=self.client(), **options)
