"""
Content chunking for flashcard generation.

Two independent strategies are provided:

- chunk_by_headings() splits markdown into one chunk per ATX heading section,
  and group_chunks_by_size() packs those sections into token-bounded groups.
- chunk_by_blocks() splits free text into overlapping windows of lines with a
  soft character budget, cutting at likely headings where possible and
  optionally resuming after an anchor card.
"""

import logging
import math
import re
from typing import Iterator, List, Optional, Sequence, Tuple

from leetstack.models import ChunkAnchor, ChunkOptions, MarkdownChunk

logger = logging.getLogger("leetstack")

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")
LIST_ITEM_PATTERN = re.compile(r"^[-*]\s")
SENTENCE_END_PATTERN = re.compile(r"[.!?]$")
LINE_BREAK_PATTERN = re.compile(r"\r?\n")

DEFAULT_TITLE = "Content"
DEFAULT_MAX_TOKENS = 3000
# How far past target_size a chunk may grow before the next block is refused
MAX_OVERSHOOT = 200
MAX_HEADING_WORDS = 12


# ---------- Heading-aware sections ----------


def chunk_by_headings(markdown: str) -> List[MarkdownChunk]:
    """
    Split markdown into sections, one per ATX heading.

    Each chunk holds its heading line and every line up to the next heading.
    Text before the first heading becomes a leading "Content" chunk. Input
    with no headings at all is returned as a single "Content" chunk.

    Args:
        markdown: The markdown text to split

    Returns:
        Chunks in document order
    """
    chunks: List[MarkdownChunk] = []
    preamble: List[str] = []
    section_lines: List[str] = []
    section: Optional[Tuple[str, int, int]] = None  # (title, level, start_index)
    offset = 0

    def close_section(end_index: int) -> None:
        title, level, start_index = section
        chunks.append(
            MarkdownChunk(
                id=f"section-{len(chunks) + 1}",
                title=title,
                level=level,
                content="\n".join(section_lines).strip(),
                start_index=start_index,
                end_index=end_index,
            )
        )

    for line in markdown.split("\n"):
        match = HEADING_PATTERN.match(line)
        if match:
            if section is not None:
                close_section(offset)
            elif "".join(preamble).strip():
                chunks.append(
                    MarkdownChunk(
                        id="section-1",
                        title=DEFAULT_TITLE,
                        level=1,
                        content="\n".join(preamble).strip(),
                        start_index=0,
                        end_index=offset,
                    )
                )
            section = (match.group(2).strip(), len(match.group(1)), offset)
            section_lines = [line]
        elif section is not None:
            section_lines.append(line)
        else:
            preamble.append(line)

        # +1 for the newline removed by split()
        offset += len(line) + 1

    if section is not None:
        close_section(min(offset, len(markdown)))

    if not chunks:
        chunks.append(
            MarkdownChunk(
                id="section-1",
                title=DEFAULT_TITLE,
                level=1,
                content=markdown.strip(),
                start_index=0,
                end_index=len(markdown),
            )
        )

    logger.debug(f"Split markdown of {len(markdown)} chars into {len(chunks)} sections")
    return chunks


def combine_chunks(chunks: Sequence[MarkdownChunk]) -> str:
    """Join chunk contents back into one document, separated by blank lines."""
    return "\n\n".join(chunk.content for chunk in chunks)


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


def group_chunks_by_size(
    chunks: Sequence[MarkdownChunk], max_tokens: int = DEFAULT_MAX_TOKENS
) -> List[List[MarkdownChunk]]:
    """
    Greedily pack consecutive chunks into groups within a token budget.

    A chunk is never split. A chunk that exceeds max_tokens on its own is
    placed alone in its group.

    Args:
        chunks: Chunks in document order
        max_tokens: Estimated token budget per group

    Returns:
        Groups of chunks, in order
    """
    groups: List[List[MarkdownChunk]] = []
    current_group: List[MarkdownChunk] = []
    current_size = 0

    for chunk in chunks:
        estimated = estimate_tokens(chunk.content)
        if current_group and current_size + estimated > max_tokens:
            groups.append(current_group)
            current_group = [chunk]
            current_size = estimated
        else:
            current_group.append(chunk)
            current_size += estimated

    if current_group:
        groups.append(current_group)

    return groups


# ---------- Overlapping line blocks ----------


def is_likely_heading(block: Optional[str]) -> bool:
    """
    Guess whether a line of plain text acts as a heading.

    Markdown headings always count. Otherwise a short line (at most twelve
    words) that is not a list item and does not end like a sentence counts.
    """
    if not block:
        return False
    stripped = block.strip()
    if not stripped:
        return False
    if stripped.startswith("#"):
        return True
    if LIST_ITEM_PATTERN.match(stripped):
        return False
    if len(stripped.split()) > MAX_HEADING_WORDS:
        return False
    if SENTENCE_END_PATTERN.search(stripped):
        return False
    return True


def trim_content_after_anchor(content: str, anchor: Optional[ChunkAnchor]) -> str:
    """
    Drop everything up to and including the line holding the anchor text.

    Anchor snippets are tried in front/back/extra order. The first snippet
    found (case-insensitively) wins. If none is found the content is
    returned unchanged.
    """
    if anchor is None:
        return content

    for target in anchor.search_targets():
        match = re.search(re.escape(target), content, re.IGNORECASE)
        if match is None:
            continue
        newline_index = content.find("\n", match.end())
        cut = newline_index + 1 if newline_index >= 0 else match.end()
        logger.debug(f"Anchor {target[:40]!r} found; skipping first {cut} chars")
        return content[cut:].lstrip()

    return content


def split_blocks(text: str) -> List[str]:
    """Split text into non-empty stripped lines."""
    blocks = (line.strip() for line in LINE_BREAK_PATTERN.split(text))
    return [block for block in blocks if block]


def _adjust_boundary(blocks: Sequence[str], start: int, end: int) -> int:
    # Cut before the last likely heading that sits strictly after start.
    end = min(end, len(blocks))
    for cut in range(end - 1, start, -1):
        if is_likely_heading(blocks[cut]):
            return cut
    return end


def iter_block_windows(
    blocks: Sequence[str], target_size: int, overlap_blocks: int
) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, end) block ranges for the block-overlap chunker.

    Starts strictly increase, so iteration always terminates.
    """
    max_size = target_size + MAX_OVERSHOOT
    start = 0

    while start < len(blocks):
        end = start
        size = 0
        while end < len(blocks):
            block_size = len(blocks[end]) + 1
            if end > start and size + block_size > max_size:
                break
            size += block_size
            end += 1
            if size >= target_size:
                break

        end = _adjust_boundary(blocks, start, end)
        yield start, end

        start = max(end - overlap_blocks, start + 1)


def chunk_by_blocks(text: str, options: Optional[ChunkOptions] = None) -> List[str]:
    """
    Split text into overlapping chunks of whole lines.

    Args:
        text: Raw long-form text (markdown or plain)
        options: Target size, overlap and optional anchor; defaults apply if None

    Returns:
        Chunk strings in document order; empty for blank input
    """
    if options is None:
        options = ChunkOptions()

    working = (text or "").strip()
    if not working:
        return []

    working = trim_content_after_anchor(working, options.anchor)
    blocks = split_blocks(working)
    if not blocks:
        return []

    chunks = []
    for start, end in iter_block_windows(blocks, options.target_size, options.overlap_blocks):
        chunk = "\n".join(blocks[start:end]).strip()
        if chunk:
            chunks.append(chunk)

    logger.debug(f"Split {len(blocks)} blocks into {len(chunks)} chunks")
    return chunks
