"""Command line entrypoint.

Usage:
    snappy install ./foo_1.0.snap --allow-unauthenticated --gc
    snappy install foo.example
    snappy update
    snappy list
    snappy versions foo.sideload
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from snappy.bootstrap import Services, build_services
from snappy.errors import NotInstalledError, PartialUpdateError, SnappyError
from snappy.flags import InstallFlags
from snappy.models.identity import PackageIdentity
from snappy.progress import LoggingProgress

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="snappy", description="Install and update snap packages.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    install = subparsers.add_parser("install", help="Install a package file or catalog reference.")
    install.add_argument("ref", help="Path to a package file, or name[.origin] from the catalog.")
    _add_install_flags(install)
    install.add_argument(
        "--inhibit-hooks",
        action="store_true",
        help="Skip activation side effects.",
    )

    update = subparsers.add_parser("update", help="Update every installed package.")
    _add_install_flags(update)

    subparsers.add_parser("list", help="List the current version of every installed package.")

    versions = subparsers.add_parser("versions", help="List installed versions of one package.")
    versions.add_argument("package", type=PackageIdentity.parse, help="Package as name.origin.")
    return parser.parse_args(argv)


def _add_install_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--allow-unauthenticated",
        action="store_true",
        help="Install content that fails or lacks an authenticity check.",
    )
    parser.add_argument(
        "--gc",
        action="store_true",
        help="Remove superseded versions after a successful install.",
    )


def _flags(args: argparse.Namespace) -> InstallFlags:
    flags = InstallFlags.NONE
    if args.allow_unauthenticated:
        flags |= InstallFlags.ALLOW_UNAUTHENTICATED
    if args.gc:
        flags |= InstallFlags.DO_INSTALL_GC
    if getattr(args, "inhibit_hooks", False):
        flags |= InstallFlags.INHIBIT_HOOKS
    return flags


def _run(args: argparse.Namespace, services: Services) -> int:
    if args.command == "install":
        name = services.installer.install(args.ref, _flags(args), LoggingProgress())
        print(f"Installed {name}")
        return 0

    if args.command == "update":
        try:
            updated = services.updater.update(_flags(args), LoggingProgress())
        except PartialUpdateError as exc:
            for item in exc.updated:
                print(f"Updated {item.name} {item.version}")
            for failure in exc.failures:
                print(f"Failed {failure.name}: {failure.error}", file=sys.stderr)
            return 1
        if not updated:
            print("Everything is up to date.")
        for item in updated:
            print(f"Updated {item.name} {item.version}")
        return 0

    if args.command == "list":
        for installed in services.store.installed():
            print(f"{installed.name}\t{installed.version}\t{installed.origin}")
        return 0

    if args.command == "versions":
        identity = args.package
        items = services.store.versions(identity)
        if not items:
            raise NotInstalledError(f"{identity} is not installed")
        for item in items:
            marker = "*" if item.active else " "
            print(f"{marker} {item.version}")
        return 0

    raise SnappyError(f"Unknown command {args.command!r}")


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    services = build_services()
    logging.basicConfig(
        level=getattr(logging, services.settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        return _run(args, services)
    except SnappyError as exc:
        LOGGER.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
