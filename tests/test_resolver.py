# pylint: disable=wrong-import-position
# pylint: disable=protected-access

import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from githubmountcore.tree.nodes import Directory, Fetcher  # noqa: E402
from githubmountcore.tree.resolver import find, is_valid_path, split_path  # noqa: E402
from githubmountcore.utils import InvalidPathError, NotExistError  # noqa: E402


class RecordingFetcher(Fetcher):
    def __init__(self, log, children=()):
        self.log = log
        self.children = children

    def populate(self, filesystem, directory):
        self.log.append(directory.full_path() or '.')
        for name in self.children:
            if name.endswith('/'):
                directory.new_dir(name[:-1], fetcher=RecordingFetcher(self.log))
            else:
                directory.add_file(name, content=name.encode())


@pytest.mark.parametrize(
    "path",
    ['.', 'a', 'a/b', 'org/repo/git/main', 'a/.b', 'a/b..', 'with space/x'],
)
def test_valid_paths(path):
    assert is_valid_path(path)


@pytest.mark.parametrize(
    "path",
    ['', '/', '/a', 'a/', 'a//b', './a', 'a/.', 'a/../b', '..', './org/repo/git/main', 'a\0b'],
)
def test_invalid_paths(path):
    assert not is_valid_path(path)
    with pytest.raises(InvalidPathError):
        split_path(path)


def test_split_path():
    assert split_path('.') == []
    assert split_path('a') == ['a']
    assert split_path('a/b/c') == ['a', 'b', 'c']


class TestFind:
    @staticmethod
    def _create_tree(log):
        root = Directory('.', fetcher=RecordingFetcher(log, ['a/', 'b/', 'file']))
        return root

    @staticmethod
    def test_root():
        log = []
        root = TestFind._create_tree(log)
        directory, file = find(root, '.')
        assert directory is root
        assert file is None
        assert log == ['.']

    @staticmethod
    def test_file():
        log = []
        root = TestFind._create_tree(log)
        directory, file = find(root, 'file')
        assert directory is root
        assert file is not None
        assert file.content == b'file'
        assert log == ['.']

    @staticmethod
    def test_fetches_only_along_the_path():
        log = []
        root = TestFind._create_tree(log)
        directory, file = find(root, 'a')
        assert file is None
        assert directory.full_path() == 'a'
        assert log == ['.', 'a']

        find(root, 'a')
        find(root, ['a'])
        assert log == ['.', 'a']

    @staticmethod
    def test_missing_segment():
        log = []
        root = TestFind._create_tree(log)
        with pytest.raises(NotExistError, match='missing'):
            find(root, 'a/missing')
        with pytest.raises(NotExistError):
            find(root, 'missing/a')

    @staticmethod
    def test_file_as_directory():
        log = []
        root = TestFind._create_tree(log)
        with pytest.raises(NotExistError):
            find(root, 'file/x')

    @staticmethod
    def test_invalid_path_does_not_fetch():
        log = []
        root = TestFind._create_tree(log)
        with pytest.raises(InvalidPathError):
            find(root, './a')
        assert log == []
