from collections.abc import Sequence
from typing import Optional, Union

from ..utils import InvalidPathError, NotExistError
from .nodes import Directory, File

ROOT_PATH = '.'


def is_valid_path(path: str) -> bool:
    """
    Returns true for '.' and for slash-separated, non-empty segments without '.' or '..' segments
    and without leading or trailing slashes.
    """
    if path == ROOT_PATH:
        return True
    if not path or '\0' in path:
        return False
    return all(part not in ('', '.', '..') for part in path.split('/'))


def split_path(path: str) -> list[str]:
    if not isinstance(path, str) or not is_valid_path(path):
        raise InvalidPathError(f"Invalid path: {path!r}")
    return [] if path == ROOT_PATH else path.split('/')


def find(root: Directory, path: Union[str, Sequence[str]]) -> tuple[Directory, Optional[File]]:
    """
    Walks from the given root along the path and returns the last directory and, if the path points to
    a file, the file. Each traversed directory is fetched before its children are looked up.
    Only one node lock is held at any time.
    """
    parts = split_path(path) if isinstance(path, str) else list(path)

    current = root
    for i, part in enumerate(parts):
        current.fetch()
        child = current.get_child(part)
        if child is None:
            raise NotExistError(f"{'/'.join(parts[: i + 1])}: no such file or directory: {part}")

        if isinstance(child, File):
            if i + 1 == len(parts):
                return current, child
            raise NotExistError(f"{'/'.join(parts)}: not a directory: {'/'.join(parts[: i + 1])}")

        current = child

    current.fetch()
    return current, None
