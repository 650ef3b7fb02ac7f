"""
Corpus ingest boundary.

Pipeline:
1. Load formulary segments (text or PDF)
2. Parse segments into DrugEntry monographs
3. Build overview + section chunks
4. Replace the whole corpus in the vector store

Re-ingestion always rebuilds from scratch; chunk ids from a previous build
are invalid afterwards.
"""
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from formulary.core.config import settings
from formulary.ingestion.chunker import build_chunks
from formulary.ingestion.formulary_parser import FormularyParser
from formulary.ingestion.loaders import load_formulary
from formulary.models import Chunk, DrugEntry
from formulary.utils.hashing import short_hash

logger = logging.getLogger(__name__)


@dataclass
class IngestReport:
    """Summary of one ingest run."""
    file_name: Optional[str] = None
    file_hash: Optional[str] = None
    segments: int = 0
    entries: int = 0
    chunks: int = 0
    duration_seconds: float = 0.0
    drug_names: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "fileName": self.file_name,
            "fileHash": self.file_hash,
            "segments": self.segments,
            "entries": self.entries,
            "chunks": self.chunks,
            "durationSeconds": round(self.duration_seconds, 3),
        }


class FormularyIngestor:
    """
    Usage:
        ingestor = FormularyIngestor(store)
        chunks = ingestor.ingest([(page_text, 1), (page_text, 2)])
        report = ingestor.ingest_file("data/formulary.pdf")
    """

    def __init__(self, store, parser: Optional[FormularyParser] = None, include_overview: bool = True):
        """
        Args:
            store: Vector store with replace(chunks)
            parser: Formulary parser (thresholds from settings when omitted)
            include_overview: Emit whole-entry chunks
        """
        self.store = store
        self.parser = parser or FormularyParser(
            min_section_length=settings.MIN_SECTION_LENGTH,
            min_entry_length=settings.MIN_ENTRY_LENGTH,
        )
        self.include_overview = include_overview
        self.last_report: Optional[IngestReport] = None

    def ingest(self, pages: Iterable[Tuple[str, int]]) -> List[Chunk]:
        """
        Parse, chunk and replace the corpus.

        Args:
            pages: Ordered (text, source_index) pairs

        Returns:
            The chunk list now held by the store
        """
        chunks, _ = self._run(list(pages), IngestReport())
        return chunks

    def ingest_file(self, file_path: Union[str, Path]) -> IngestReport:
        """
        Load a .txt or .pdf formulary and ingest it.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: For unsupported file types
        """
        path = Path(file_path)
        file_hash, segments = load_formulary(path)
        logger.info(f"Ingesting {path.name} (hash {short_hash(file_hash)})")

        _, report = self._run(segments, IngestReport(file_name=path.name, file_hash=file_hash))
        return report

    def _run(self, segments: List[Tuple[str, int]], report: IngestReport) -> Tuple[List[Chunk], IngestReport]:
        start = time.time()

        entries: List[DrugEntry] = self.parser.parse(segments)
        chunks = build_chunks(entries, include_overview=self.include_overview)
        self.store.replace(chunks)

        report.segments = len(segments)
        report.entries = len(entries)
        report.chunks = len(chunks)
        report.drug_names = [entry.drug_name for entry in entries]
        report.duration_seconds = time.time() - start
        self.last_report = report

        logger.info(
            f"Ingest complete: {report.segments} segments -> {report.entries} entries -> "
            f"{report.chunks} chunks in {report.duration_seconds:.2f}s"
        )
        return chunks, report
