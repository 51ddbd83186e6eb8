"""
Backup CLI tool for SchoolSync.

Commands:
- export: Bootstrap from the remote store and write a backup document
- validate: Check a backup document without importing it

Usage:
    schoolsync-backup export -o backup.json
    schoolsync-backup validate backup.json

Invariants:
    - Export refuses to write a backup when the bootstrap ran offline
    - Validation uses the same parser as import, so a file that validates
      is a file that imports

How to change safely:
    - Keep exit codes stable for scripts: 0 success, 1 failure
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from ..config import SyncConfig
from ..errors import BackupFormatError
from ..main import Application, setup_logging
from ..store.backup import export_backup, parse_backup
from ..store.records import Collection

logger = logging.getLogger(__name__)


class BackupCLI:
    """Backup export and validation.

    Example:
        >>> cli = BackupCLI()
        >>> errors = cli.validate(open("backup.json").read())
    """

    async def export(self, app: Application) -> str | None:
        """Bootstrap the application and render its store as a backup.

        Returns:
            The backup document, or None if the remote store was unreachable
        """
        try:
            result = await app.bootstrap()
        finally:
            await app.gateway.close()
        if not result.online:
            logger.error("Remote store unreachable; not exporting defaults")
            return None
        if result.failed:
            logger.warning(
                "Some collections could not be loaded and are exported empty",
                extra={"collections": [c.value for c in result.failed]},
            )
        return export_backup(app.store)

    def validate(self, text: str) -> list[str]:
        """Return the problems found in a backup document (empty if valid)."""
        try:
            snapshot = parse_backup(text)
        except BackupFormatError as e:
            return e.errors or [e.message]
        logger.info(
            "Backup document is valid",
            extra={c.value: len(snapshot.get(c)) for c in Collection},
        )
        return []


def main() -> None:
    """CLI entry point for the backup tool."""
    parser = argparse.ArgumentParser(description="SchoolSync backup tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # export command
    export_parser = subparsers.add_parser("export", help="Export remote data to a backup file")
    export_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a backup file")
    validate_parser.add_argument("file", help="Backup JSON file to validate")

    args = parser.parse_args()

    try:
        config = SyncConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    setup_logging(config)

    cli = BackupCLI()

    if args.command == "export":
        output = asyncio.run(cli.export(Application(config)))
        if output is None:
            print("Export failed: remote store unreachable", file=sys.stderr)
            sys.exit(1)

        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(output)
            print(f"Backup exported to {args.output}", file=sys.stderr)
        else:
            print(output)

    elif args.command == "validate":
        with open(args.file, encoding="utf-8") as f:
            text = f.read()

        errors = cli.validate(text)

        if not errors:
            print("Backup is valid")
            sys.exit(0)
        else:
            print(f"Backup validation failed with {len(errors)} error(s):")
            for error in errors:
                print(f"  - {error}")
            sys.exit(1)


if __name__ == "__main__":
    main()
