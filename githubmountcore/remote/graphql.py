import datetime
import logging
from typing import Any, Callable, Optional, TypeVar

import httpx

from ..utils import NotExistError, RemoteFetchError
from .provider import MetadataProvider, Page, Release, ReleaseAsset, RepositoryInfo, TreeEntry

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_GRAPHQL_URL = 'https://api.github.com/graphql'

REPOSITORY_FIELDS = """
    name
    nameWithOwner
    diskUsage
    isArchived
    isDisabled
    defaultBranchRef { name }
    releases { totalCount }
"""

REPOSITORY_QUERY = (
    """
query ($owner: String!, $repo: String!) {
  repository(owner: $owner, name: $repo) {"""
    + REPOSITORY_FIELDS
    + """  }
}
"""
)

REPOSITORIES_QUERY = (
    """
query ($owner: String!, $count: Int!, $cursor: String) {
  repositoryOwner(login: $owner) {
    repositories(first: $count, after: $cursor, orderBy: {field: NAME, direction: ASC}) {
      pageInfo { hasNextPage endCursor }
      nodes {"""
    + REPOSITORY_FIELDS
    + """      }
    }
  }
}
"""
)

TREE_QUERY = """
query ($owner: String!, $repo: String!, $expression: String!) {
  repository(owner: $owner, name: $repo) {
    object(expression: $expression) {
      ... on Tree {
        entries { name mode size }
      }
    }
  }
}
"""

# GitHub Enterprise Server 3.3 does not know the size field of tree entries.
TREE_QUERY_WITHOUT_SIZES = TREE_QUERY.replace('entries { name mode size }', 'entries { name mode }')

RELEASES_QUERY = """
query ($owner: String!, $repo: String!, $count: Int!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    releases(first: $count, after: $cursor, orderBy: {field: CREATED_AT, direction: DESC}) {
      pageInfo { hasNextPage endCursor }
      nodes {
        tag { name }
        isDraft
        isPrerelease
        createdAt
        description
        releaseAssets(first: 100) {
          nodes { name size downloadUrl }
        }
      }
    }
  }
}
"""

TARBALL_QUERY = """
query ($owner: String!, $repo: String!, $ref: String!) {
  repository(owner: $owner, name: $repo) {
    ref(qualifiedName: $ref) {
      target {
        ... on Commit { tarballUrl }
      }
    }
  }
}
"""


def parse_timestamp(value: Optional[str]) -> float:
    """Parses GitHub's ISO 8601 timestamps like '2022-09-06T20:21:35Z' into seconds since the epoch."""
    if not value:
        return 0.0
    parsed = datetime.datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.timestamp()


def _parse_repository(node: dict[str, Any]) -> RepositoryInfo:
    defaultBranchRef = node.get('defaultBranchRef') or {}
    releases = node.get('releases') or {}
    return RepositoryInfo(
        name=node['name'],
        nameWithOwner=node['nameWithOwner'],
        isArchived=bool(node.get('isArchived', False)),
        isDisabled=bool(node.get('isDisabled', False)),
        defaultBranch=defaultBranchRef.get('name') or '',
        releaseCount=int(releases.get('totalCount') or 0),
        diskUsage=int(node.get('diskUsage') or 0),
    )


def _parse_release(node: dict[str, Any]) -> Release:
    assets = ((node.get('releaseAssets') or {}).get('nodes')) or []
    return Release(
        tag=node['tag']['name'],
        description=node.get('description') or '',
        createdAt=parse_timestamp(node.get('createdAt')),
        assets=[
            ReleaseAsset(name=asset['name'], size=int(asset.get('size') or 0), downloadUrl=asset['downloadUrl'])
            for asset in assets
        ],
    )


class GraphQLMetadataProvider(MetadataProvider):
    """Queries repository metadata from the GitHub GraphQL (v4) API."""

    def __init__(
        self,
        url: str = DEFAULT_GRAPHQL_URL,
        client: Optional[httpx.Client] = None,
        pageSize: int = 100,
        entrySizes: bool = True,
    ) -> None:
        """
        url: The GraphQL endpoint, e.g., https://github.example.com/api/graphql for GitHub Enterprise.
        client: HTTP client carrying authentication headers and timeouts.
        pageSize: Number of repositories and releases queried per request. GitHub allows at most 100.
        entrySizes: Set to False for GitHub Enterprise 3.3, which cannot report sizes of tree entries.
        """
        self.url = url
        self.client = client if client is not None else httpx.Client(follow_redirects=True)
        self.pageSize = pageSize
        self.entrySizes = entrySizes

    def query(self, query: str, **variables) -> dict[str, Any]:
        """Sends a GraphQL query and returns the 'data' member of the response."""
        try:
            response = self.client.post(self.url, json={'query': query, 'variables': variables})
        except (httpx.HTTPError, httpx.InvalidURL) as exception:
            raise RemoteFetchError(f"GraphQL request to {self.url} failed: {exception}") from exception

        if response.status_code != 200:
            raise RemoteFetchError(f"GraphQL request to {self.url} failed with HTTP status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exception:
            raise RemoteFetchError(f"GraphQL response from {self.url} is not valid JSON: {exception}") from exception

        if not isinstance(payload, dict):
            raise RemoteFetchError(f"GraphQL response from {self.url} is not a JSON object")

        errors = payload.get('errors')
        if errors:
            messages = [str(error.get('message', error)) if isinstance(error, dict) else str(error) for error in errors]
            raise RemoteFetchError("GraphQL query failed: " + '; '.join(messages))

        data = payload.get('data')
        if not isinstance(data, dict):
            raise RemoteFetchError(f"GraphQL response from {self.url} contains no data")
        return data

    def _parse(self, what: str, parser: Callable[[], T]) -> T:
        try:
            return parser()
        except (KeyError, TypeError, ValueError, AttributeError) as exception:
            raise RemoteFetchError(f"Malformed GraphQL response for {what}: {exception!r}") from exception

    def repository(self, owner: str, repo: str) -> Optional[RepositoryInfo]:
        data = self.query(REPOSITORY_QUERY, owner=owner, repo=repo)
        node = data.get('repository')
        if node is None:
            return None
        return self._parse(f"repository {owner}/{repo}", lambda: _parse_repository(node))

    def repositories(self, owner: str, cursor: Optional[str] = None) -> Page[RepositoryInfo]:
        data = self.query(REPOSITORIES_QUERY, owner=owner, count=self.pageSize, cursor=cursor)
        repositoryOwner = data.get('repositoryOwner')
        if repositoryOwner is None:
            raise NotExistError(f"No organization or user named {owner}")

        def parse() -> Page[RepositoryInfo]:
            repositories = repositoryOwner['repositories']
            pageInfo = repositories.get('pageInfo') or {}
            return Page(
                items=[_parse_repository(node) for node in repositories.get('nodes') or [] if node],
                endCursor=pageInfo.get('endCursor'),
                hasNextPage=bool(pageInfo.get('hasNextPage', False)),
            )

        return self._parse(f"repositories of {owner}", parse)

    def tree(self, owner: str, repo: str, branch: str, path: str) -> list[TreeEntry]:
        query = TREE_QUERY if self.entrySizes else TREE_QUERY_WITHOUT_SIZES
        data = self.query(query, owner=owner, repo=repo, expression=f"{branch}:{path}")
        location = f"{owner}/{repo}/{branch}:{path}"

        repository = data.get('repository')
        if repository is None:
            raise NotExistError(f"Repository {owner}/{repo} does not exist")
        treeObject = repository.get('object')
        if treeObject is None:
            raise NotExistError(f"Tree {location} does not exist")

        return self._parse(
            f"tree {location}",
            lambda: [
                TreeEntry(name=entry['name'], mode=int(entry['mode']), size=entry.get('size'))
                for entry in treeObject['entries']
            ],
        )

    def releases(self, owner: str, repo: str, cursor: Optional[str] = None) -> Page[Release]:
        data = self.query(RELEASES_QUERY, owner=owner, repo=repo, count=self.pageSize, cursor=cursor)
        repository = data.get('repository')
        if repository is None:
            raise NotExistError(f"Repository {owner}/{repo} does not exist")

        def parse() -> Page[Release]:
            releases = repository['releases']
            pageInfo = releases.get('pageInfo') or {}
            items = []
            for node in releases.get('nodes') or []:
                if node.get('isDraft') or node.get('isPrerelease'):
                    logger.debug("Skipping draft or prerelease %s of %s/%s", node.get('tag'), owner, repo)
                    continue
                items.append(_parse_release(node))
            return Page(
                items=items, endCursor=pageInfo.get('endCursor'), hasNextPage=bool(pageInfo.get('hasNextPage', False))
            )

        return self._parse(f"releases of {owner}/{repo}", parse)

    def tarball_url(self, owner: str, repo: str, branch: str) -> str:
        data = self.query(TARBALL_QUERY, owner=owner, repo=repo, ref=f"refs/heads/{branch}")
        repository = data.get('repository')
        if repository is None:
            raise NotExistError(f"Repository {owner}/{repo} does not exist")
        ref = repository.get('ref')
        if ref is None:
            raise NotExistError(f"Branch {branch} of {owner}/{repo} does not exist")
        return self._parse(f"tarball of {owner}/{repo}/{branch}", lambda: ref['target']['tarballUrl'])
