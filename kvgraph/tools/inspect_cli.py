"""
Inspection CLI for kvgraph stores.

This tool reads a store without going through object mapping:
- keys: List the ids of a keyspace (scan cursor)
- show: Print one flat record as JSON
- count: Print the number of records in a keyspace
- types: Print the registered types as JSON

Usage:
    KVGRAPH_STORE=sqlite KVGRAPH_DATA_DIR=./data kvgraph-inspect keys persons
    kvgraph-inspect show persons 1
    kvgraph-inspect types --module myapp.models

Invariants:
    - Read-only; no command writes to the store
    - Store selection comes from the same environment as the library
      (see kvgraph.config)

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for scripts
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from ..config import Settings
from ..observability import setup_logging
from ..scan import ScanCursor
from ..schema import MappingRegistry
from ..store.base import KeyValueStore, create_key, create_store

logger = logging.getLogger(__name__)


class InspectCLI:
    """Read-only store inspection commands.

    Example:
        >>> cli = InspectCLI(store)
        >>> await cli.keys("persons")
        ['1', '2']
    """

    def __init__(self, store: KeyValueStore, batch_size: int = 100) -> None:
        self.store = store
        self.batch_size = batch_size

    async def keys(
        self,
        keyspace: str,
        match: Optional[str] = None,
        batch_size: Optional[int] = None,
    ) -> List[str]:
        """List the ids of a keyspace in scan order."""
        cursor = ScanCursor(self.store, default_batch_size=self.batch_size)
        return [id async for id in cursor.iterate(keyspace, batch_size=batch_size, match=match)]

    async def show(self, keyspace: str, id: str) -> Optional[str]:
        """Render a stored record as JSON, or None if absent.

        Values are decoded as UTF-8; undecodable bytes are replaced.
        """
        record = await self.store.get(keyspace, id)
        if record is None:
            return None
        output = {
            "key": create_key(keyspace, id),
            "record": {
                path: value.decode("utf-8", errors="replace")
                for path, value in sorted(record.items())
            },
        }
        return json.dumps(output, indent=2, sort_keys=True)

    async def count(self, keyspace: str) -> int:
        """Number of records in a keyspace."""
        return await self.store.count(keyspace)


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point for the inspection tool."""
    parser = argparse.ArgumentParser(description="kvgraph store inspection tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # keys command
    keys_parser = subparsers.add_parser("keys", help="List the ids of a keyspace")
    keys_parser.add_argument("keyspace", help="Keyspace to scan")
    keys_parser.add_argument("--match", help="Glob filter applied to ids")
    keys_parser.add_argument("--batch-size", type=int, help="Ids per scan step")

    # show command
    show_parser = subparsers.add_parser("show", help="Print one record as JSON")
    show_parser.add_argument("keyspace", help="Keyspace of the record")
    show_parser.add_argument("id", help="Id of the record")

    # count command
    count_parser = subparsers.add_parser("count", help="Count the records of a keyspace")
    count_parser.add_argument("keyspace", help="Keyspace to count")

    # types command
    types_parser = subparsers.add_parser("types", help="Print registered types as JSON")
    types_parser.add_argument("--module", help="Python module registering the types")

    args = parser.parse_args(argv)

    settings = Settings.from_env()
    setup_logging(settings.observability)
    settings.log_config()

    if args.command == "types":
        registry = _load_registry(args.module)
        print(registry.to_json())
        return

    sys.exit(asyncio.run(_run(args, settings)))


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    store = create_store(settings.storage)
    await store.connect()
    try:
        cli = InspectCLI(store, batch_size=settings.scan.batch_size)

        if args.command == "keys":
            for id in await cli.keys(args.keyspace, match=args.match, batch_size=args.batch_size):
                print(id)
            return 0

        if args.command == "show":
            output = await cli.show(args.keyspace, args.id)
            if output is None:
                print(f"No record at {create_key(args.keyspace, args.id)}", file=sys.stderr)
                return 1
            print(output)
            return 0

        if args.command == "count":
            print(await cli.count(args.keyspace))
            return 0

        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await store.close()


def _load_registry(module_path: str | None = None) -> MappingRegistry:
    """Load a mapping registry from a module, or the global registry.

    Args:
        module_path: Python module path registering the types

    Returns:
        MappingRegistry instance
    """
    if module_path:
        import importlib

        module = importlib.import_module(module_path)
        if hasattr(module, "registry"):
            return module.registry
        if hasattr(module, "get_registry"):
            return module.get_registry()

    # Types registered on import land in the global registry
    from ..schema import get_registry

    return get_registry()


if __name__ == "__main__":
    main()
