"""
Entry-aware chunker.

Each DrugEntry becomes one overview chunk (the whole monograph) plus one
chunk per populated section. Section chunks repeat the drug name and section
label so they embed close to questions like "paracetamol side effects".
"""
import logging
import uuid
from typing import Iterable, List

from formulary.models import Chunk, ChunkMetadata, DrugEntry

logger = logging.getLogger(__name__)


def entry_metadata(entry: DrugEntry) -> ChunkMetadata:
    """Entry-level metadata shared by all chunks of one entry."""
    return ChunkMetadata(
        drug_name=entry.drug_name,
        source_range=entry.source_range,
        pregnancy_category=entry.pregnancy_category,
        atc_code=entry.atc_code,
        classification=entry.classification,
    )


def build_chunks(entries: Iterable[DrugEntry], include_overview: bool = True) -> List[Chunk]:
    """
    Convert parsed entries into retrievable chunks.

    Args:
        entries: Parsed DrugEntry list
        include_overview: Emit the whole-entry chunk before section chunks

    Returns:
        Flat chunk list in entry order. Ids are fresh per build.
    """
    chunks: List[Chunk] = []
    entry_count = 0

    for entry in entries:
        entry_count += 1
        base = entry_metadata(entry)

        if include_overview and entry.normalized_content.strip():
            chunks.append(Chunk(id=_new_id(), content=entry.normalized_content, metadata=base))

        for section, text in entry.sections.items():
            if not text.strip():
                continue
            metadata = ChunkMetadata(
                drug_name=base.drug_name,
                source_range=base.source_range,
                section=section,
                pregnancy_category=base.pregnancy_category,
                atc_code=base.atc_code,
                classification=base.classification,
            )
            content = f"{entry.drug_name} - {section.label}\n{text}"
            chunks.append(Chunk(id=_new_id(), content=content, metadata=metadata))

    logger.info(f"Built {len(chunks)} chunks from {entry_count} entries")
    return chunks


def _new_id() -> str:
    return uuid.uuid4().hex
