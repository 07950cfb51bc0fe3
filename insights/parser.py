"""Insight text parser.

The backend's analysis fields are loosely structured model output: numbered
bold headings, ### sections, dash bullets, pipe-delimited impact tables and
plain prose, mixed freely. There is no grammar. This module classifies each
line on its own into a typed display block, trying a fixed list of rules in
priority order and taking the first that matches.

The parser is total. Any string (empty, whitespace-only, unmatched **) yields
a document. A line no rule recognises becomes a PlainLine; only blank lines
are dropped.

Each insight field gets its own rule chain:

    SUGGESTION   main header, section header, sub-bullet, bullet, plain
    IMPACT       section header, impact line, bullet, plain
    EXPLANATION  main header, section header, bullet, numbered point, plain

Parsing without a field applies every rule in priority order.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterator

from schemas.change import ChangeRecord
from schemas.insight import (
    Bullet,
    ImpactLine,
    InsightBlock,
    InsightDocument,
    InsightField,
    MainHeader,
    PlainLine,
    SectionHeader,
    SubBullet,
)

logger = logging.getLogger(__name__)

EMPHASIS = "**"
WARNING_GLYPH = "\u26a0"
LIGHTBULB_GLYPH = "\U0001f4a1"
_VARIATION_SELECTOR = "\ufe0f"

_MAIN_HEADER = re.compile(r"^(\d{1,9})\. \*\*((?:(?!\*\*).)+)\*\*$")
_IMPACT_LINE = re.compile(r"^(\d{1,9})\.\s+([^|]+?)\s*\|\s*(\d{1,9})%\s*\|\s*(.*)$")
_SUB_BULLET = re.compile(r"^-\s*-\s*\*\*([^*]+?)(?::\*\*|\*\*:)\s*(.*)$")
_NUMBERED_POINT = re.compile(r"^(\d{1,9})\.\s+(.*)$")


def strip_emphasis(text: str) -> str:
    """Remove bold delimiters (**) from display text, leaving everything else."""
    return text.replace(EMPHASIS, "")


# ── Line rules ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LineRule:
    """One classification rule.

    Attributes:
        name: Short identifier for the rule.
        match: Returns a block for the (already trimmed, non-blank) line,
            or None if the rule does not apply.
    """

    name: str
    match: Callable[[str], InsightBlock | None]


def _main_header(line: str) -> MainHeader | None:
    m = _MAIN_HEADER.match(line)
    if not m:
        return None
    return MainHeader(index=int(m.group(1)), title=m.group(2).strip())


def _section_header(line: str) -> SectionHeader | None:
    if line.startswith("###"):
        title = line.lstrip("#")
    elif line.startswith(WARNING_GLYPH):
        title = line[len(WARNING_GLYPH):].lstrip(_VARIATION_SELECTOR)
    elif line.startswith(LIGHTBULB_GLYPH):
        title = line[len(LIGHTBULB_GLYPH):].lstrip(_VARIATION_SELECTOR)
    else:
        return None
    return SectionHeader(title=strip_emphasis(title).strip())


def _impact_line(line: str) -> ImpactLine | None:
    m = _IMPACT_LINE.match(line)
    if not m:
        return None
    return ImpactLine(
        rank=int(m.group(1)),
        service_name=strip_emphasis(m.group(2)).strip(),
        confidence_percent=int(m.group(3)),
        description=strip_emphasis(m.group(4)).strip(),
    )


def _sub_bullet(line: str) -> SubBullet | None:
    m = _SUB_BULLET.match(line)
    if not m:
        return None
    return SubBullet(label=m.group(1).strip(), text=strip_emphasis(m.group(2)).strip())


def _bullet(line: str) -> Bullet | None:
    if not line.startswith("-"):
        return None
    return Bullet(text=strip_emphasis(line[1:]).strip())


def _numbered_point(line: str) -> PlainLine | None:
    m = _NUMBERED_POINT.match(line)
    if not m:
        return None
    return PlainLine(index=int(m.group(1)), text=strip_emphasis(m.group(2)).strip())


def _plain(line: str) -> PlainLine:
    return PlainLine(text=strip_emphasis(line))


MAIN_HEADER = LineRule("main_header", _main_header)
SECTION_HEADER = LineRule("section_header", _section_header)
IMPACT_LINE = LineRule("impact_line", _impact_line)
SUB_BULLET = LineRule("sub_bullet", _sub_bullet)
BULLET = LineRule("bullet", _bullet)
NUMBERED_POINT = LineRule("numbered_point", _numbered_point)
PLAIN = LineRule("plain", _plain)

ALL_RULES: tuple[LineRule, ...] = (
    MAIN_HEADER,
    SECTION_HEADER,
    IMPACT_LINE,
    SUB_BULLET,
    BULLET,
    NUMBERED_POINT,
    PLAIN,
)

FIELD_RULES: dict[InsightField, tuple[LineRule, ...]] = {
    InsightField.SUGGESTION: (MAIN_HEADER, SECTION_HEADER, SUB_BULLET, BULLET, PLAIN),
    InsightField.IMPACT: (SECTION_HEADER, IMPACT_LINE, BULLET, PLAIN),
    InsightField.EXPLANATION: (MAIN_HEADER, SECTION_HEADER, BULLET, NUMBERED_POINT, PLAIN),
}


# ── Parser ────────────────────────────────────────────────────────────────────

def iter_lines(text: str | None) -> Iterator[str]:
    """Yield trimmed, non-blank lines of text. None yields nothing."""
    if not text:
        return
    for raw in text.splitlines():
        line = raw.strip()
        if line:
            yield line


def classify(line: str, rules: tuple[LineRule, ...]) -> InsightBlock:
    """Return the block produced by the first rule that matches line.

    Every chain ends with PLAIN, which always matches. The final fallback
    below only guards chains assembled by callers without it.
    """
    for rule in rules:
        block = rule.match(line)
        if block is not None:
            return block
    return _plain(line)


def parse(text: str | None, field: InsightField | None = None) -> InsightDocument:
    """Parse one free-text insight field into an InsightDocument.

    Args:
        text: The raw field text. None and blank strings are valid and
            produce an empty document.
        field: Which field the text came from, as an InsightField or its
            value. Selects that field's rule chain. None applies every rule
            in priority order.

    Returns:
        An InsightDocument with one block per non-blank line, in source order.
    """
    if field is not None:
        field = InsightField(field)
    rules = FIELD_RULES[field] if field is not None else ALL_RULES
    blocks = [classify(line, rules) for line in iter_lines(text)]
    logger.debug(
        "Parsed %s into %d blocks.",
        field.value if field is not None else "text",
        len(blocks),
    )
    return InsightDocument(field=field, blocks=blocks)


def parse_record(record: ChangeRecord) -> dict[InsightField, InsightDocument]:
    """Parse every insight field the record carries.

    Fields that are missing or blank are left out of the result: absence
    means no insight is available, not an error.

    Args:
        record: The breaking change whose card is being expanded.

    Returns:
        Mapping of InsightField → InsightDocument, in SUGGESTION, IMPACT,
        EXPLANATION order, containing only non-empty documents.
    """
    documents: dict[InsightField, InsightDocument] = {}
    for field in InsightField:
        document = parse(getattr(record, field.value), field)
        if not document.is_empty:
            documents[field] = document
    return documents
