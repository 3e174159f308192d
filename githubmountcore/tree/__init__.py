"""Lazily populated node tree with path resolution, tarball import, and directory and file handles."""

from .handles import DIRECTORY_SIZE, DirectoryHandle, DirEntry, FileHandle, FileInfo, ReadDirResult
from .nodes import DEFAULT_DIRECTORY_MODE, DEFAULT_FILE_MODE, Directory, Fetcher, File, Node
from .resolver import ROOT_PATH, find, is_valid_path, split_path
from .tarball import import_tarball
