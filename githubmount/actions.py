import argparse
import importlib
import logging
import os
import sys
from typing import Optional

import githubmountcore.version
from githubmountcore.compressions import COMPRESSION_BACKENDS
from githubmountcore.filesystem import GitHubFileSystem

from .version import __version__

logger = logging.getLogger(__name__)


def print_versions() -> None:
    print("githubmount", __version__)
    print("githubmountcore", githubmountcore.version.__version__)

    print()
    print("System Software:")
    print()
    print("Python", sys.version.split(' ', maxsplit=1)[0])

    print()
    print("Python Modules:")
    print()

    modules = {module for info in COMPRESSION_BACKENDS.values() for module, _ in info.requiredModules}
    modules.update(["httpx", "rich", "mfusepy", "fuse"])
    for moduleName in sorted(modules):
        try:
            module = importlib.import_module(moduleName)
        except (ImportError, OSError):
            continue
        moduleVersion = getattr(module, '__version__', None)
        if moduleVersion:
            print(moduleName, moduleVersion)


def create_file_system(args, **options) -> GitHubFileSystem:
    token = os.environ.get(args.token_env) if args.token_env else None
    if args.token_env and not token:
        logger.warning("Environment variable %s is not set. Anonymous requests will be rate-limited.", args.token_env)

    return GitHubFileSystem(
        graphqlUrl=args.graphql_url,
        rawUrl=args.raw_url,
        token=token,
        thresholdKiB=args.threshold_kib,
        entrySizes=not args.no_entry_sizes,
        orgs=[(org, args.allow_archived) for org in args.org],
        repos=args.repo,
        **options,
    )


def list_paths(fileSystem: GitHubFileSystem, top: str, output=None) -> None:
    output = output if output is not None else sys.stdout
    for path, entry in fileSystem.walk(top):
        print(path + ('/' if entry.is_dir() and path != '.' else ''), file=output)


def cat_path(fileSystem: GitHubFileSystem, path: str, output=None) -> None:
    output = output if output is not None else sys.stdout.buffer
    output.write(fileSystem.read_bytes(path))
    output.flush()


def create_fuse_mount(fileSystem: GitHubFileSystem, args) -> None:
    # Import late to avoid the overhead and the libfuse requirement for the other actions.
    from .fuse import fuse  # pylint: disable=import-outside-toplevel
    from .FuseMount import FuseMount  # pylint: disable=import-outside-toplevel

    # Convert the comma separated list of key[=value] options into a dictionary for fusepy
    fusekwargs = (
        dict(option.split('=', 1) if '=' in option else (option, True) for option in args.fuse.split(','))
        if args.fuse
        else {}
    )

    # Fetch the scaffolding before daemonizing so that configuration errors are shown.
    fileSystem.connect()

    with FuseMount(fileSystem, args.mount_point) as fuseOperationsObject:
        try:
            fuse.FUSE(
                operations=fuseOperationsObject,
                mountpoint=fuseOperationsObject.mountPoint,
                foreground=args.foreground,
                ro=True,
                **fusekwargs,
            )
        except RuntimeError as exception:
            raise ValueError(
                "FUSE mountpoint could not be created. See previous output for more information."
            ) from exception


def process_parsed_arguments(args, fileSystem: Optional[GitHubFileSystem] = None) -> int:
    if not args.org and not args.repo:
        raise argparse.ArgumentTypeError("You must specify at least one organization with --org or one --repo!")
    if args.threshold_kib < 0:
        raise argparse.ArgumentTypeError("The tarball threshold must not be negative!")

    actions = [action for action in (args.list, args.cat, args.mount_point) if action]
    if len(actions) != 1:
        raise argparse.ArgumentTypeError("Specify exactly one of --list, --cat, or a mount point!")

    if fileSystem is None:
        fileSystem = create_file_system(args)

    with fileSystem:
        if args.list:
            list_paths(fileSystem, args.list)
        elif args.cat:
            cat_path(fileSystem, args.cat)
        else:
            create_fuse_mount(fileSystem, args)

    return 0
