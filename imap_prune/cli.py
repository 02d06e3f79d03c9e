"""
Command Line Interface for IMAP Mail Prune.

Provides the CLI entry point for the prune tool.
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ConfigManager
from .email_processor import MailPruner
from .errors import MailStoreError, OperationCancelled


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="imap-prune",
        description="Delete messages from IMAP folders, all of them or those from given senders.",
    )
    parser.add_argument("--config", default="config.json", help="Configuration file (default: %(default)s)")
    parser.add_argument("--local-config", default="config.local.json",
                        help="Local overrides file (default: %(default)s)")
    parser.add_argument("--permanent", action="store_true", default=None,
                        help="Really flag and expunge messages (default: safe mode from config)")
    parser.add_argument("--folder", help="Clean only this folder (inbox, spam, trash or a folder name)")
    parser.add_argument("--address", action="append", default=[],
                        help="Sender address to delete messages from, repeatable; needs --folder")
    args = parser.parse_args(argv)

    if args.address and not args.folder:
        parser.error("--address requires --folder")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for IMAP Mail Prune."""
    args = parse_args(argv)

    try:
        print(f"IMAP Mail Prune v{__version__}")
        print("=" * 40)

        # Initialize configuration and pruner
        config_manager = ConfigManager(args.config, args.local_config)
        pruner = MailPruner(config_manager)

        targets = None
        if args.folder:
            targets = [{
                "folder": config_manager.get_provider().resolve_folder(args.folder),
                "addresses": args.address,
            }]

        results, failures = pruner.run(targets=targets, permanent=args.permanent)

        # Final summary
        for result in results:
            summary = result.summary()
            print(f"[done] {summary['folder']}: {summary['selected_for_deletion']} selected, "
                  f"{summary['flagged']} deleted ({summary['state']})")
        for folder, error in failures.items():
            print(f"[fail] {folder}: {error}")
        if any(result.dry_run for result in results):
            print("[note] Safe mode enabled: no changes were made. Use --permanent or set permanent=true "
                  "in config.json to delete.")

        return 1 if failures else 0

    except KeyboardInterrupt:
        print("\n[!] Interrupted by user")
        return 1
    except (MailStoreError, OperationCancelled) as e:
        print(f"[!] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
