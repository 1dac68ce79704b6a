#!/usr/bin/env python3
"""Administer the configured storage root from the command line.

Usage:
  .venv/bin/python scripts/storage_admin.py store ./report.pdf --path reports/2024
  .venv/bin/python scripts/storage_admin.py retrieve reports/2024/report.pdf
  .venv/bin/python scripts/storage_admin.py mkdir reports/2025
  .venv/bin/python scripts/storage_admin.py wipe --yes

Settings come from STORAGE_SETTINGS_FILE (JSON) or the environment.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from universal_storage.common.config import get_settings
from universal_storage.common.logging import setup_logging
from universal_storage.infra.observability.metrics import serve_metrics
from universal_storage.services import (
    StorageListener,
    StoredObjectDescriptor,
    UniversalStorage,
    UniversalStorageError,
    build_storage,
)

logger = logging.getLogger("universal_storage.cli")


class _LoggingListener(StorageListener):
    def on_file_stored(self, descriptor: StoredObjectDescriptor) -> None:
        logger.info("stored %s", descriptor.full_url)

    def on_folder_created(self, descriptor: StoredObjectDescriptor) -> None:
        logger.info("created folder %s", descriptor.full_url)

    def on_error(self, error: UniversalStorageError) -> None:
        logger.error("storage error: %s", error)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage the universal storage root")
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while the command runs",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for the JSON log stream",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    store = sub.add_parser("store", help="Upload a local file")
    store.add_argument("file")
    store.add_argument("--path", default=None, help="Folder inside the root")

    retrieve = sub.add_parser("retrieve", help="Download an object to the tmp dir")
    retrieve.add_argument("path")

    remove = sub.add_parser("remove", help="Delete an object")
    remove.add_argument("path")

    mkdir = sub.add_parser("mkdir", help="Create a folder marker")
    mkdir.add_argument("path")

    rmdir = sub.add_parser("rmdir", help="Delete a folder marker")
    rmdir.add_argument("path")

    sub.add_parser("clean", help="Empty the local tmp directory")

    wipe = sub.add_parser("wipe", help="Delete every object and version in the root")
    wipe.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the wipe; without it nothing is deleted",
    )
    return parser


def run(args: argparse.Namespace, storage: UniversalStorage) -> int:
    if args.command == "store":
        descriptor = storage.store_file(args.file, args.path)
        print(descriptor.full_url)
    elif args.command == "retrieve":
        print(storage.retrieve_file(args.path))
    elif args.command == "remove":
        storage.remove_file(args.path)
    elif args.command == "mkdir":
        print(storage.create_folder(args.path).full_url)
    elif args.command == "rmdir":
        storage.remove_folder(args.path)
    elif args.command == "clean":
        storage.clean()
    elif args.command == "wipe":
        if not args.yes:
            print("[DRY-RUN] pass --yes to wipe the storage root")
            return 1
        count = storage.wipe()
        print(f"Deleted {count} objects and versions")
    return 0


def main(
    argv: Sequence[str] | None = None, storage: UniversalStorage | None = None
) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(args.log_level)
    if args.metrics_port is not None:
        serve_metrics(args.metrics_port)
    if storage is None:
        storage = build_storage(get_settings())
    storage.register_listener(_LoggingListener())
    try:
        return run(args, storage)
    except UniversalStorageError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
