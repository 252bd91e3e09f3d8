"""Module entrypoint: run the export API server or export one invoice file."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import List, Optional

from . import config
from .errors import DependencyError
from .logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="invoice_export")
    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser("serve", help="Run the HTTP export server (default).")
    serve.add_argument("--host", default=os.getenv("INVOICE_HOST", "0.0.0.0"))
    serve.add_argument("--port", type=int, default=int(os.getenv("INVOICE_PORT", "8080")))

    export = commands.add_parser("export", help="Export an invoice JSON file to PDF.")
    export.add_argument("data", help="JSON file with 'invoice', 'client' and 'sender' objects.")
    export.add_argument("--quality", choices=["high", "low"], default="high")
    export.add_argument("--output-dir", default=config.OUTPUT_DIR)
    return parser


async def export_invoice_file(data_path: str, quality: str, output_dir: str) -> int:
    from .orchestrator import ExportOrchestrator
    from .page import InvoicePage
    from .server import load_capture_backend
    from .sinks import DirectorySink

    browser_session_cls, capture_engine_cls = load_capture_backend()
    sink = DirectorySink(output_dir)

    async def loader():
        with open(data_path, encoding="utf-8") as handle:
            return json.load(handle)

    async with browser_session_cls() as session:
        orchestrator = ExportOrchestrator(capture_engine_cls(session.browser), sink=sink)
        page = InvoicePage(orchestrator, loader, {"download": "true", "quality": quality})
        outcome = await page.open()

    if page.error is not None:
        print(page.error, file=sys.stderr)
        return 1
    if outcome is None or not outcome.ok:
        print(outcome.message if outcome else "Nothing was exported.", file=sys.stderr)
        return 1
    print(sink.path_for(outcome.artifact))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging()
    try:
        if args.command == "export":
            raise SystemExit(asyncio.run(export_invoice_file(args.data, args.quality, args.output_dir)))

        from .server import run

        host = getattr(args, "host", os.getenv("INVOICE_HOST", "0.0.0.0"))
        port = getattr(args, "port", int(os.getenv("INVOICE_PORT", "8080")))
        run(host, port)
    except DependencyError as exc:
        print(str(exc), file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
