"""githubmount Core

This is the backend of githubmount. It is intended to be used as a library.

It presents the organizations, repositories, branches, and releases of a GitHub
instance as a read-only, lazily populated directory tree. Directories are only
queried from the remote API when a path walks through them, and small
repositories are imported in one go from their tarball.

The most common usecase should be covered by the GitHubFileSystem class.
For the building blocks, see the githubmountcore.tree submodule.

Example:

    from githubmountcore.filesystem import GitHubFileSystem

    gfs = GitHubFileSystem(token=os.environ["GITHUB_TOKEN"], repos=[("mxmlnkn", "ratarmount")])
    for path, entry in gfs.walk("mxmlnkn/ratarmount/git"):
        print(path)

    with gfs.open("mxmlnkn/ratarmount/git/master/README.md") as file:
        print(file.read())
"""

from .version import __version__
