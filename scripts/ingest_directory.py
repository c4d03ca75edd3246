#!/usr/bin/env python3
"""
Ingest a Directory of Event Documents
=====================================

Uploads every PDF, DOCX and TXT file in a directory for one event, waits
for ingestion to finish, prints each document's outcome and optionally
asks a test question. With --json each record is printed as a JSON line.

Usage:
    python scripts/ingest_directory.py EVENT_ID ./docs --question "Where is parking?"
"""

import argparse
import asyncio
import sys
from pathlib import Path

from eventdesk.config import SUPPORTED_FORMATS, get_settings
from eventdesk.knowledge.application import DocumentDTO
from eventdesk.main import build_support_desk
from eventdesk.shared.infrastructure.logging import setup_logging
from eventdesk.tickets.application import TicketDTO


async def main(event_id: str, directory: Path, question: str | None, as_json: bool = False) -> int:
    settings = get_settings()
    setup_logging(settings.log_level, settings.environment, settings.app_name)

    files = sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower().lstrip(".") in SUPPORTED_FORMATS
    )
    if not files:
        print(f"No supported files in {directory}", file=sys.stderr)
        return 1

    async with build_support_desk(settings) as desk:
        for path in files:
            document = await desk.upload_document(event_id, path.name, path.read_bytes())
            if not as_json:
                print(f"Queued {path.name} as {document.id}")

        await desk.wait_for_ingestion()

        failed = 0
        for document in await desk.list_documents(event_id):
            if document.failure_reason:
                failed += 1
            if as_json:
                print(DocumentDTO.from_entity(document).model_dump_json())
                continue
            line = f"{document.filename}: {document.status} ({document.chunk_count} chunks)"
            if document.failure_reason:
                line += f" - {document.failure_reason}"
            print(line)

        if question:
            ticket = await desk.create_ticket(event_id, question)
            if as_json:
                print(TicketDTO.from_entity(ticket).model_dump_json())
            else:
                print(f"\nQ: {ticket.question}")
                print(f"Status: {ticket.status}")
                if ticket.display_answer:
                    print(f"A ({ticket.auto_answer_score:.3f}): {ticket.display_answer}")

    return 1 if failed else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Ingest event documents from a directory")
    parser.add_argument("event_id")
    parser.add_argument("directory", type=Path)
    parser.add_argument("--question", default=None, help="Ask a question after ingestion")
    parser.add_argument("--json", action="store_true", help="Print records as JSON lines")
    args = parser.parse_args()

    raise SystemExit(asyncio.run(main(args.event_id, args.directory, args.question, args.json)))
