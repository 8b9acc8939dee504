"""Command-line entry point for importing a character card."""

import argparse
import asyncio
import json
import logging
import sys
import io
from pathlib import Path
from typing import List, Optional


def setup_logging(debug: bool = False):
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO

    # Force UTF-8 encoding for stdout/stderr on Windows
    if sys.platform == 'win32':
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

    # Logs go to stderr so stdout carries only the imported record
    logging.basicConfig(
        level=logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True  # Force reconfiguration even if already configured
    )

    # Only raise verbosity for our own loggers
    app_logger = logging.getLogger('companion_cards')
    app_logger.setLevel(level)

    logging.getLogger(__name__).debug(f"Logging configured: companion_cards logger level={app_logger.level}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="companion-cards-import",
        description="Import a character card (JSON, V2 card or PNG card) and print the record as JSON."
    )
    parser.add_argument("file", type=Path, help="Card file to import")
    parser.add_argument(
        "--kind",
        choices=["json", "v2", "png"],
        help="Declared file kind (detected from the file when omitted)"
    )
    parser.add_argument("--config", type=Path, help="Path to card_import.yaml")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser


async def run_import(file: Path, kind: Optional[str], config_path: Optional[Path], debug: bool) -> int:
    from companion_cards.config import ConfigLoader, ConfigLoadError
    from companion_cards.services.character_cards import (
        CardImportError,
        CharacterCardImporter,
        FileKind,
    )

    logger = logging.getLogger(__name__)

    try:
        config = ConfigLoader().load_import_config(config_path)
    except ConfigLoadError as e:
        print(str(e), file=sys.stderr)
        return 2

    setup_logging(debug=debug or config.debug)

    def notify(level: str, message: str) -> None:
        if level == "error":
            print(message, file=sys.stderr)

    importer = CharacterCardImporter(config=config, notify=notify)
    session_id = importer.open_session()
    try:
        result = await importer.import_file(
            session_id,
            file,
            kind=FileKind(kind) if kind else None
        )
    except CardImportError:
        return 1
    finally:
        importer.close_session(session_id)

    for warning in result.warnings:
        logger.warning(warning)

    output = {
        "format": result.format,
        "sourceKind": result.source_kind.value,
        "record": result.record.to_dict(),
    }
    print(json.dumps(output, ensure_ascii=False, indent=2))
    return 0


def main(argv: Optional[List[str]] = None):
    """Import one card file."""
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug)
    sys.exit(asyncio.run(run_import(args.file, args.kind, args.config, args.debug)))


if __name__ == "__main__":
    main()
