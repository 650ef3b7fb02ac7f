"""
SHA-256 fingerprints.

Response-cache keys hash the normalized question joined with the drug name;
ingest reports carry a digest of the uploaded formulary file.
"""
import hashlib
from pathlib import Path
from typing import Union

READ_BLOCK = 64 * 1024


def compute_file_hash(file_path: Union[str, Path]) -> str:
    """
    Digest a formulary file in fixed-size blocks.

    Raises:
        FileNotFoundError: the path does not point at a file
    """
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"Formulary file not found: {path}")

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while True:
            block = handle.read(READ_BLOCK)
            if not block:
                break
            digest.update(block)
    return digest.hexdigest()


def compute_string_hash(text: str) -> str:
    """64-character hex digest of the UTF-8 bytes of ``text``."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def short_hash(full_hash: str, length: int = 8) -> str:
    # Log lines only; never used as a key
    return full_hash[:length]
