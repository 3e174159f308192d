#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# We explicitly do want to import everything as late as possible here in order to speed up calls.
# pylint: disable=import-outside-toplevel

import argparse
import logging
import sys
import traceback
from typing import Optional

from githubmountcore.filesystem import DEFAULT_RAW_URL, DEFAULT_THRESHOLD_KIB
from githubmountcore.remote.graphql import DEFAULT_GRAPHQL_URL
from githubmountcore.utils import GithubMountError

try:
    from rich.logging import RichHandler
except ImportError:
    RichHandler = None  # type: ignore

DEBUG_LEVELS = {0: logging.ERROR, 1: logging.WARNING, 2: logging.INFO, 3: logging.DEBUG}


class _CustomFormatter(argparse.ArgumentDefaultsHelpFormatter, argparse.RawDescriptionHelpFormatter):
    def add_arguments(self, actions):
        actions = sorted(actions, key=lambda x: getattr(x, 'option_strings'))
        super().add_arguments(actions)


class PrintVersionAction(argparse.Action):
    def __call__(self, parser, args, values, option_string=None):
        from .actions import print_versions

        print_versions()
        parser.exit()


def parse_repository(value: str) -> tuple[str, ...]:
    """Parses OWNER/REPO[@BRANCH[,BRANCH...]] into (owner, repo, *branches)."""
    repository, _, branches = value.partition('@')
    owner, _, name = repository.partition('/')
    if not owner or not name or '/' in name:
        raise argparse.ArgumentTypeError(f"Repository must be specified as OWNER/REPO[@BRANCH]: {value}")
    return (owner, name, *[branch for branch in branches.split(',') if branch])


def setup_logging(debug: int) -> None:
    level = DEBUG_LEVELS.get(max(0, min(debug, 3)), logging.WARNING)
    if RichHandler is not None:
        logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[RichHandler()], force=True)
    else:
        logging.basicConfig(level=level, format="[%(levelname)s] %(name)s: %(message)s", force=True)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='githubmount',
        formatter_class=_CustomFormatter,
        add_help=False,
        description='''\
With githubmount, you can:
  - Mount the repositories of GitHub organizations and users to a folder for read-only access
  - Browse branches under <org>/<repo>/git/<branch>/ and release assets under <org>/<repo>/releases/<tag>/
  - List or print single paths without mounting anything

Repositories smaller than --threshold-kib are downloaded as a whole tarball on first access.
Larger ones are listed directory by directory and files are downloaded on open.

# Example Usage

    export GITHUB_TOKEN=...
    githubmount --org mxmlnkn --repo pallets/click@main mounted
    ls mounted/pallets/click/git/main
    fusermount -u mounted
''',
    )

    commonGroup = parser.add_argument_group("Optional Arguments")
    sourceGroup = parser.add_argument_group("Repository Options")
    remoteGroup = parser.add_argument_group("Remote Options")
    actionGroup = parser.add_argument_group("Actions")
    positionalGroup = parser.add_argument_group("Positional Options")

    # fmt: off
    commonGroup.add_argument('-h', '--help', action='help', help='Show this help message and exit.')

    commonGroup.add_argument(
        '-f', '--foreground', action='store_true', default=False,
        help='Keeps the python program in foreground so it can print debug output when the mountpoint is accessed.')

    commonGroup.add_argument(
        '-d', '--debug', type=int, default=1,
        help='Sets the debugging level. Higher means more output. Currently, 3 is the highest.')

    commonGroup.add_argument(
        '-v', '--version', action=PrintVersionAction, nargs=0, default=argparse.SUPPRESS,
        help='Print version information and exit.')

    sourceGroup.add_argument(
        '--org', action='append', default=[], metavar='ORG',
        help='Show all repositories of this organization or user with their default branches. '
             'May be specified multiple times.')

    sourceGroup.add_argument(
        '--allow-archived', action='store_true', default=False,
        help='Also show archived repositories of the organizations specified with --org.')

    sourceGroup.add_argument(
        '--repo', action='append', default=[], type=parse_repository, metavar='OWNER/REPO[@BRANCH]',
        help='Show a single repository, even when archived. Multiple branches can be given separated by commas. '
             'If no branch is given, the default branch is shown.')

    remoteGroup.add_argument(
        '--graphql-url', type=str, default=DEFAULT_GRAPHQL_URL,
        help='The GraphQL API endpoint, e.g., https://github.example.com/api/graphql for GitHub Enterprise.')

    remoteGroup.add_argument(
        '--raw-url', type=str, default=DEFAULT_RAW_URL,
        help='The host serving raw file contents of branches.')

    remoteGroup.add_argument(
        '--token-env', type=str, default='GITHUB_TOKEN',
        help='Name of the environment variable containing the access token.')

    remoteGroup.add_argument(
        '--threshold-kib', type=int, default=DEFAULT_THRESHOLD_KIB,
        help='Repositories with a smaller disk usage in KiB are imported from their tarball in one go. '
             'Set to 0 to always list directory by directory.')

    remoteGroup.add_argument(
        '--no-entry-sizes', action='store_true', default=False,
        help='Do not query file sizes when listing directories. Required for GitHub Enterprise Server 3.3.')

    actionGroup.add_argument(
        '--list', type=str, metavar='PATH',
        help='Recursively list all paths below PATH instead of mounting. Use "." for everything.')

    actionGroup.add_argument(
        '--cat', type=str, metavar='PATH',
        help='Print the contents of the file at PATH to stdout instead of mounting.')

    actionGroup.add_argument(
        '-o', '--fuse', type=str, default='',
        help='Comma separated FUSE options. See "man mount.fuse" for help. '
             'Example: --fuse "allow_other,entry_timeout=2.8,gid=0". ')

    positionalGroup.add_argument(
        'mount_point', nargs='?',
        help='The path to a folder to mount the repositories into.')
    # fmt: on

    return parser


def _parse_args(rawArgs: Optional[list[str]] = None):
    return create_parser().parse_args(rawArgs)


def cli(rawArgs: Optional[list[str]] = None) -> int:
    """
    Command line interface for githubmount. Call with args = [ '--help' ] for a description.

    rawArgs: In general, rawArgs is None, meaning sys.argv is used. When used programmatically with a custom
             list of arguments, the first argument should not be the path to the script / the executable,
             i.e., call either cli() or cli(sys.argv[1:])!
    """

    # Manually parse --debug argument in case argument parsing with argparse itself goes wrong.
    tmpArgs = rawArgs if rawArgs else sys.argv
    debug = 1
    for i in range(len(tmpArgs) - 1):
        if tmpArgs[i] in ['-d', '--debug'] and tmpArgs[i + 1].isdecimal():
            try:
                debug = int(tmpArgs[i + 1])
            except ValueError:
                continue

    try:
        args = _parse_args(rawArgs)
        setup_logging(args.debug)
        from .actions import process_parsed_arguments

        return process_parsed_arguments(args)
    except (GithubMountError, IsADirectoryError, argparse.ArgumentTypeError, ValueError) as exception:
        print("[Error]", exception)
        if debug >= 3:
            traceback.print_exc()

    return 1


if __name__ == '__main__':
    sys.exit(cli())
