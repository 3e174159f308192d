import dataclasses
import logging
import sys
from collections.abc import Sequence
from typing import IO, Callable, Optional

from .utils import CompressionError, UnsupportedFormatError, normalize_content_type

logger = logging.getLogger(__name__)

try:
    import indexed_gzip
except ImportError:
    indexed_gzip = None  # type: ignore

try:
    import rapidgzip
except ImportError:
    rapidgzip = None  # type: ignore


GZIP = 'gzip'

# Maps the Content-Type of an archive download to its compression. None means an uncompressed TAR.
ARCHIVE_CONTENT_TYPES: dict[str, Optional[str]] = {
    'application/x-tar': None,
    'application/octet-stream': None,
    'application/gzip': GZIP,
    'application/x-gzip': GZIP,
}


@dataclasses.dataclass
class CompressionBackendInfo:
    # Opens a decompressed file object from a compressed file object.
    open: Callable[..., IO[bytes]]
    formats: set[str]
    # The modules listed here are checked and the package name can be suggested to be installed.
    # Tuple: (module name, package name)
    requiredModules: list[tuple[str, str]]


COMPRESSION_BACKENDS: dict[str, CompressionBackendInfo] = {
    'rapidgzip': CompressionBackendInfo(
        (lambda x, parallelization=1: rapidgzip.RapidgzipFile(x, parallelization=parallelization)),
        {GZIP},
        [('rapidgzip', 'rapidgzip')],
    ),
    'indexed_gzip': CompressionBackendInfo(
        (lambda x, parallelization=1: indexed_gzip.IndexedGzipFile(fileobj=x)),
        {GZIP},
        [('indexed_gzip', 'indexed_gzip')],
    ),
}


def find_available_backend(
    compression: str,
    enabledBackends: Optional[Sequence[str]] = None,
    prioritizedBackends: Optional[Sequence[str]] = None,
) -> Optional[CompressionBackendInfo]:
    if prioritizedBackends is None:
        prioritizedBackends = []

    matchingBackends = [
        backend
        for backend, info in COMPRESSION_BACKENDS.items()
        if (enabledBackends is None or backend in enabledBackends) and compression in info.formats
    ]

    for backendName in [*prioritizedBackends, *matchingBackends]:
        if backendName not in matchingBackends:
            continue
        backend = COMPRESSION_BACKENDS[backendName]
        if all(module in sys.modules for module, _ in backend.requiredModules):
            return backend

    return None


def detect_compression(contentType: Optional[str]) -> Optional[str]:
    """Returns the compression for the given archive Content-Type or raises for unrecognized types."""
    normalized = normalize_content_type(contentType or '')
    if normalized not in ARCHIVE_CONTENT_TYPES:
        raise UnsupportedFormatError(f"Unsupported archive content type: {contentType!r}")
    return ARCHIVE_CONTENT_TYPES[normalized]


def open_archive_stream(
    fileobj: IO[bytes],
    contentType: Optional[str],
    enabledBackends: Optional[Sequence[str]] = None,
    prioritizedBackends: Optional[Sequence[str]] = None,
) -> IO[bytes]:
    """Returns a file object yielding the uncompressed TAR data of an archive download."""
    compression = detect_compression(contentType)
    if compression is None:
        return fileobj

    backend = find_available_backend(compression, enabledBackends, prioritizedBackends)
    if backend is None:
        packages = sorted(
            package
            for info in COMPRESSION_BACKENDS.values()
            if compression in info.formats
            for _, package in info.requiredModules
        )
        raise CompressionError(
            f"Cannot open {compression}-compressed archive because none of these packages is installed: "
            + ', '.join(packages)
        )

    logger.debug("Decompressing %s archive stream", compression)
    return backend.open(fileobj)
