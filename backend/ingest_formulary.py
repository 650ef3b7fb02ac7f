#!/usr/bin/env python3
"""
CLI script for ingesting a formulary export.

Usage:
    python ingest_formulary.py data/formulary.pdf            # Parse, embed, save index
    python ingest_formulary.py data/formulary.txt --dry-run  # Parse only, list entries
    python ingest_formulary.py data/formulary.pdf --index-dir data/faiss/test
"""
import sys
import argparse
import logging
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from formulary.core.config import settings
from formulary.ingestion.chunker import build_chunks
from formulary.ingestion.formulary_parser import FormularyParser
from formulary.ingestion.loaders import load_formulary
from formulary.utils.logging import setup_logging

logger = logging.getLogger("ingest_formulary")


def dry_run(path: Path) -> int:
    """Parse and chunk without touching Azure or the index."""
    _, segments = load_formulary(path)
    parser = FormularyParser(min_section_length=settings.MIN_SECTION_LENGTH, min_entry_length=settings.MIN_ENTRY_LENGTH)
    entries = parser.parse(segments)
    chunks = build_chunks(entries)

    for entry in entries:
        sections = ", ".join(key.value for key in entry.sections) or "-"
        print(f"{entry.source_range.label:>9}  {entry.classification.value:<7} {entry.drug_name:<40} {sections}")

    print(f"\n{len(segments)} segments -> {len(entries)} entries -> {len(chunks)} chunks")
    return 0


def full_ingest(path: Path, index_dir: str) -> int:
    if not settings.azure_configured:
        print("AZURE_OPENAI_API_KEY / AZURE_OPENAI_ENDPOINT are not set (see .env)")
        return 1

    from formulary.ingestion.embedder import AzureEmbedder
    from formulary.ingestion.ingest_pipeline import FormularyIngestor
    from formulary.vectorstore.faiss_store import FAISSVectorStore

    store = FAISSVectorStore(AzureEmbedder(), dimension=settings.EMBEDDING_DIMENSION)
    report = FormularyIngestor(store).ingest_file(path)
    store.save(index_dir, report.to_dict())

    print(f"Ingested {report.entries} entries ({report.chunks} chunks) into {index_dir}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Ingest a formulary (.txt or .pdf)")
    parser.add_argument("path", help="Formulary file")
    parser.add_argument("--dry-run", action="store_true", help="Parse only and list entries")
    parser.add_argument("--index-dir", default=settings.INDEX_DIR, help="Where to save the FAISS index")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    args = parser.parse_args()

    setup_logging(level=args.log_level, json_format=False)

    path = Path(args.path)
    if not path.exists():
        print(f"File not found: {path}")
        return 1

    if args.dry_run:
        return dry_run(path)
    return full_ingest(path, args.index_dir)


if __name__ == "__main__":
    sys.exit(main())
