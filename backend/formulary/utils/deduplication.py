"""
Deduplication utilities for retrieval results.

Removes duplicate chunks from multi-query retrieval so each piece of
information appears only once in the final context.
"""
import logging
from typing import Iterable, List, Optional, Set

from formulary.models import Chunk

logger = logging.getLogger(__name__)

CONTENT_KEY_LENGTH = 80


def deduplicate_chunks(chunks: Iterable[Chunk]) -> List[Chunk]:
    """
    Remove duplicate chunks, keeping the first occurrence.

    A chunk is a duplicate when its id, or its (drug, section, range)
    composite, or (for chunks with neither) its leading content was already
    seen.

    Example:
        Input: [chunk_A, chunk_B, chunk_A, chunk_C]
        Output: [chunk_A, chunk_B, chunk_C]
    """
    seen: Set[str] = set()
    unique_chunks: List[Chunk] = []
    total = 0

    for chunk in chunks:
        total += 1
        keys = _get_chunk_keys(chunk)

        if any(key in seen for key in keys):
            continue

        seen.update(keys)
        unique_chunks.append(chunk)

    duplicates_removed = total - len(unique_chunks)
    if duplicates_removed > 0:
        logger.info(f"Removed {duplicates_removed} duplicate chunks ({len(unique_chunks)} unique)")

    return unique_chunks


def chunk_key(chunk: Chunk) -> str:
    """
    Primary dedup key, in priority order: id, composite, content prefix.
    """
    return _get_chunk_keys(chunk)[0]


def composite_key(chunk: Chunk) -> Optional[str]:
    """`drug|section|range` lower-cased, or None without a drug name."""
    metadata = chunk.metadata
    if not metadata.drug_name:
        return None
    section = metadata.section.value if metadata.section else ""
    return f"{metadata.drug_name}|{section}|{metadata.entry_range}".lower()


def _get_chunk_keys(chunk: Chunk) -> List[str]:
    keys: List[str] = []
    if chunk.id:
        keys.append(f"id:{chunk.id}")
    composite = composite_key(chunk)
    if composite:
        keys.append(f"meta:{composite}")
    if not keys:
        keys.append(f"content:{chunk.content[:CONTENT_KEY_LENGTH].strip().lower()}")
    return keys
