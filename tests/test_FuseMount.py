# pylint: disable=wrong-import-position
# pylint: disable=protected-access

import errno
import os
import stat
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from helpers import SYMLINK_ARCHIVE, FakeGitHub, create_tar  # noqa: E402

from githubmountcore.utils import RemoteFetchError  # noqa: E402

FuseMountModule = pytest.importorskip('githubmount.FuseMount', reason="FUSE bindings are not installed")
FuseMount = FuseMountModule.FuseMount
fuse = FuseMountModule.fuse


@pytest.fixture(name="operations")
def fixture_operations(tmp_path):
    github = FakeGitHub()
    github.add_repository('org', 'repo', releaseCount=1)
    github.add_tarball('org', 'repo', 'main', create_tar(SYMLINK_ARCHIVE))
    with github.filesystem(repos=[('org', 'repo')]) as fileSystem, FuseMount(fileSystem, str(tmp_path)) as result:
        yield result


def _errno(function, *args):
    with pytest.raises(fuse.FuseOSError) as exception:
        function(*args)
    return exception.value.errno


class TestFuseMount:
    @staticmethod
    def test_getattr(operations):
        attributes = operations.getattr('/org/repo/git/main/c/d')
        assert attributes['st_size'] == 4
        assert stat.S_ISREG(attributes['st_mode'])
        assert attributes['st_nlink'] == 1
        assert attributes['st_blocks'] == 1

        attributes = operations.getattr('/')
        assert stat.S_ISDIR(attributes['st_mode'])
        assert attributes['st_nlink'] == 2

    @staticmethod
    def test_getattr_errors(operations):
        assert _errno(operations.getattr, '/org/missing') == errno.ENOENT
        assert _errno(operations.getattr, '/org/../org') == errno.EINVAL

    @staticmethod
    def test_readdir(operations):
        entries = list(operations.readdir('/org/repo/git/main', 0))
        assert entries[:2] == ['.', '..']
        assert [entry[0] for entry in entries[2:]] == ['a', 'b', 'c', 'e']
        assert stat.S_ISDIR(entries[-1][1]['st_mode'])

        assert _errno(lambda: list(operations.readdir('/org/repo/git/main/a', 0))) == errno.ENOTDIR

    @staticmethod
    def test_open_read_release(operations):
        handle = operations.open('/org/repo/git/main/e/d', os.O_RDONLY)
        assert operations.read('/org/repo/git/main/e/d', 2, 1, handle) == b'dd'
        assert operations.read('/org/repo/git/main/e/d', 100, 0, handle) == b'ddd\n'
        assert operations.release('/org/repo/git/main/e/d', handle) == 0

        assert _errno(operations.read, '/org/repo/git/main/e/d', 1, 0, handle) == errno.EBADF
        assert _errno(operations.release, '/org/repo/git/main/e/d', handle) == errno.ESTALE

    @staticmethod
    def test_open_errors(operations):
        assert _errno(operations.open, '/org/repo/git/main/a', os.O_WRONLY) == errno.EROFS
        assert _errno(operations.open, '/org/repo/git/main/c', os.O_RDONLY) == errno.EISDIR
        assert _errno(operations.open, '/org/repo/git/main/x', os.O_RDONLY) == errno.ENOENT

    @staticmethod
    def test_remote_errors_map_to_eio(operations, monkeypatch):
        def fail(*args):
            raise RemoteFetchError("Service Unavailable")

        monkeypatch.setattr(operations.fileSystem.metadataProvider, "releases", fail)
        assert _errno(operations.getattr, '/org/repo/releases/v1') == errno.EIO

    @staticmethod
    def test_readlink(operations):
        assert _errno(operations.readlink, '/org/repo/git/main/e') == errno.EINVAL
