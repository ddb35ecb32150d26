"""Split file contents into message-sized chunks.

Lines are packed greedily so that most chunk boundaries fall on line
breaks. Chunking is deterministic: position ``i`` of two runs over the same
content always holds the same text, which is what lets the engine align
old messages with new chunks by position.
"""

from __future__ import annotations


def chunk(content: str, max_len: int) -> list[str]:
    """Split *content* into chunks of at most *max_len* characters.

    Line endings are kept, so ``"".join(chunk(c, n)) == c``. A single line
    longer than *max_len* is hard-split every *max_len* characters. Empty
    content yields no chunks.
    """
    if max_len <= 0:
        raise ValueError(f"max_len must be positive, got {max_len}")

    chunks: list[str] = []
    current = ""
    for line in content.splitlines(keepends=True):
        if len(current) + len(line) <= max_len:
            current += line
            continue

        if current:
            chunks.append(current)
            current = ""

        while len(line) > max_len:
            chunks.append(line[:max_len])
            line = line[max_len:]
        current = line

    if current:
        chunks.append(current)
    return chunks


def cap_chunks(chunks: list[str], max_chunks: int, max_len: int, notice: str) -> list[str]:
    """Limit *chunks* to *max_chunks*, ending the last one with *notice*.

    The last kept chunk is truncated so that it still fits in *max_len*
    once *notice* is appended.
    """
    if max_chunks <= 0:
        raise ValueError(f"max_chunks must be positive, got {max_chunks}")
    if len(chunks) <= max_chunks:
        return chunks

    notice = notice[:max_len]
    kept = chunks[:max_chunks]
    kept[-1] = kept[-1][: max_len - len(notice)] + notice
    return kept
