from .content import HttpContentFetcher
from .graphql import DEFAULT_GRAPHQL_URL, GraphQLMetadataProvider
from .provider import (
    MODE_DIRECTORY,
    MODE_EXECUTABLE,
    MODE_FILE,
    MODE_SUBMODULE,
    MODE_SYMLINK,
    ContentFetcher,
    Download,
    MetadataProvider,
    Page,
    Release,
    ReleaseAsset,
    RepositoryInfo,
    TreeEntry,
)
