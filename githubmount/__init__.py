"""githubmount

This is the frontend for githubmount.
It is normally not intended to be used as a library.

The installed githubmount script will load this module and call its 'cli' function,
which could also be done programmatically.

Example:

    from githubmount.cli import cli

    cli(["--repo", "mxmlnkn/ratarmount@master", "--list", "mxmlnkn/ratarmount/git/master"])
"""

from .version import __version__
