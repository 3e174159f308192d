import os
import platform
from typing import get_type_hints


class GithubMountError(Exception):
    """Base exception for githubmount module."""


class InvalidPathError(GithubMountError, ValueError):
    """Exception for malformed paths, which are rejected before any remote interaction."""


class NotExistError(GithubMountError, FileNotFoundError):
    """Exception for paths, path segments, or link targets that have no matching node."""


class RemoteFetchError(GithubMountError):
    """Exception for failed metadata queries, failed downloads, and malformed remote payloads."""


class UnsupportedFormatError(GithubMountError):
    """Exception for remote entry modes or download content types that are not recognized."""


class CompressionError(UnsupportedFormatError):
    """Exception for trying to decode content with unsupported compression or unavailable decompression module."""


class ClosedError(GithubMountError, ValueError):
    """Exception for operations executed on a closed directory or file handle."""


def overrides(parentClass):
    """Simple decorator that checks that a method with the same name exists in the parent class"""

    def overrider(method):
        if platform.python_implementation() == 'PyPy':
            return method

        assert method.__name__ in dir(parentClass)
        parentMethod = getattr(parentClass, method.__name__)
        assert callable(parentMethod)

        if os.getenv('GITHUBMOUNT_CHECK_OVERRIDES', '').lower() not in ('1', 'yes', 'on', 'enable', 'enabled'):
            return method

        parentTypes = get_type_hints(parentMethod)
        # If the parent is not typed, e.g., fusepy, then do not show errors for the typed derived class.
        for argument, argumentType in get_type_hints(method).items():
            if argument in parentTypes:
                parentType = parentTypes[argument]
                assert argumentType == parentType, f"{method.__name__}: {argument}: {argumentType} != {parentType}"

        return method

    return overrider


def ceil_div(dividend, divisor):
    return -(dividend // -divisor)


def normalize_content_type(contentType: str) -> str:
    """Strips parameters like '; charset=utf-8' and normalizes the case of a Content-Type header value."""
    return contentType.partition(';')[0].strip().lower()
