"""
CLI entry-point for the ingestion pipeline and retrieval.

Usage
-----
    python -m docrag.services.cli ingest ./report.pdf --owner alice
    python -m docrag.services.cli query "quarterly revenue" --owner alice --top-k 5
    python -m docrag.services.cli stats --owner alice
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


def _services():
    from docrag.config import Settings
    from docrag.ingestion.config import IngestSettings
    from docrag.services.container import build_services

    return build_services(Settings(), IngestSettings())


def cmd_ingest(args: argparse.Namespace) -> int:
    from docrag.errors import DocRagError

    file_path = Path(args.file_path)
    if not file_path.exists():
        logger.error("File does not exist: %s", file_path)
        return 1
    content_type = args.content_type or mimetypes.guess_type(file_path.name)[0] or "text/plain"

    svc = _services()
    try:
        summary = asyncio.run(
            svc.processor.ingest_bytes(args.owner, file_path.name, content_type, file_path.read_bytes())
        )
    except DocRagError as exc:
        logger.error("Ingestion failed: %s", exc)
        return 1

    print("\n══════════════ Ingestion Summary ══════════════")
    print(f"  File processed  : {file_path}")
    print(f"  Document id     : {summary.document_id}")
    print(f"  Method          : {summary.extraction_method.value}")
    print(f"  Extracted chars : {summary.extracted_length}")
    print(f"  Chunks stored   : {summary.chunks}")
    print(f"  Quality score   : {summary.quality_score:.3f}")
    print("═══════════════════════════════════════════════")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    svc = _services()
    docs = svc.store.list_documents(args.owner)
    print("\n══════════════ Store Stats ══════════════")
    for d in docs:
        state = "processed" if d.processed else f"pending ({d.processing_error or 'not started'})"
        chunks = svc.store.count_chunks(document_id=d.id)
        print(f"  {d.filename or d.id}: {chunks} chunks, {state}")
    print(f"  TOTAL: {len(docs)} documents, {svc.store.count_chunks(owner_id=args.owner)} chunks")
    print("═════════════════════════════════════════")
    return 0


def cmd_query(args: argparse.Namespace) -> int:
    svc = _services()
    results = asyncio.run(svc.retriever.retrieve(args.query, args.owner, args.top_k))

    print(f"\nTop {len(results)} results for: \"{args.query}\"\n")
    for i, r in enumerate(results, 1):
        score = f"sim={r.similarity:.4f}" if r.similarity is not None else "sim=n/a"
        print(f"── Result {i} ({score}, strategy={r.strategy.value}) ──")
        print(f"   Source: {r.source} #{r.chunk_index}")
        if r.heading:
            print(f"   Heading: {r.heading}")
        print(f"   Text: {r.content[:300]}{'…' if len(r.content) > 300 else ''}")
        print()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Document ingestion and retrieval CLI",
        prog="python -m docrag.services.cli",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # ingest
    p_ingest = sub.add_parser("ingest", help="Extract, chunk, embed and store one file")
    p_ingest.add_argument("file_path", type=str, help="Path to the document")
    p_ingest.add_argument("--owner", required=True, help="Owner id the document belongs to")
    p_ingest.add_argument("--content-type", default=None, help="Override the guessed content type")
    p_ingest.set_defaults(func=cmd_ingest)

    # stats
    p_stats = sub.add_parser("stats", help="Show an owner's documents and chunk counts")
    p_stats.add_argument("--owner", required=True)
    p_stats.set_defaults(func=cmd_stats)

    # query
    p_query = sub.add_parser("query", help="Retrieve the most relevant chunks")
    p_query.add_argument("query", type=str, help="Search query")
    p_query.add_argument("--owner", required=True)
    p_query.add_argument("--top-k", type=int, default=5, help="Number of results")
    p_query.set_defaults(func=cmd_query)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
