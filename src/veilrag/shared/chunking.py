"""
Text chunking for ingestion.

Source text is split into paragraphs on blank lines, then each paragraph into
overlapping windows of words so nothing is lost at a chunk edge.
"""
from pathlib import Path
from typing import List, Union

DEFAULT_CHUNK_SIZE = 500
DEFAULT_OVERLAP = 100


def split_paragraphs(text: str) -> List[str]:
    """Split text on blank lines, dropping empty paragraphs."""
    return [para.strip() for para in text.split("\n\n") if para.strip()]


def load_file(path: Union[str, Path], encoding: str = "utf-8") -> List[str]:
    """Load a text file and return its paragraphs."""
    return split_paragraphs(Path(path).read_text(encoding=encoding))


def create_chunks(
    paragraphs: List[str],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> List[str]:
    """
    Split paragraphs into overlapping chunks of words.

    Consecutive chunks of one paragraph share `overlap` words. Chunks never
    span two paragraphs.

    Args:
        paragraphs: Paragraph texts
        chunk_size: Words per chunk
        overlap: Words shared by consecutive chunks

    Returns:
        Chunk texts in document order
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    # a step of zero would never advance
    if not 0 <= overlap < chunk_size:
        raise ValueError(
            f"overlap ({overlap}) must be >= 0 and < chunk_size ({chunk_size})"
        )

    step = chunk_size - overlap
    chunks = []
    for para in paragraphs:
        words = para.split(" ")
        for start in range(0, len(words), step):
            chunks.append(" ".join(words[start:start + chunk_size]))
    return chunks
