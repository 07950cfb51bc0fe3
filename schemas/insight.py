"""Insight document schema.

The backend attaches three free-text analysis fields to each breaking change.
InsightTextParser turns each one into an InsightDocument: an ordered list of
typed display blocks the presentation layer renders one by one.

This is a rendering-oriented projection of the text, not a normalized model.
Blocks appear in source order and are never merged or reordered.
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class InsightField(str, Enum):
    """Which free-text field of a ChangeRecord a document was parsed from.

    The value is the ChangeRecord attribute name, so callers can do
    getattr(record, field.value).
    """

    SUGGESTION = "ai_suggestion"
    IMPACT = "predicted_impact"
    EXPLANATION = "plain_english_explanation"


class MainHeader(BaseModel):
    """A numbered, bolded heading: "1. **Add a v2 endpoint**"."""

    kind: Literal["main_header"] = "main_header"
    index: int
    title: str


class SectionHeader(BaseModel):
    """A section heading introduced by ###, a warning glyph or a lightbulb glyph."""

    kind: Literal["section_header"] = "section_header"
    title: str


class SubBullet(BaseModel):
    """A nested, labelled bullet: "- - **Note:** keep the old field"."""

    kind: Literal["sub_bullet"] = "sub_bullet"
    label: str
    text: str


class Bullet(BaseModel):
    kind: Literal["bullet"] = "bullet"
    text: str


class ImpactLine(BaseModel):
    """One ranked prediction of a downstream service affected by the change.

    Attributes:
        rank: Position in the prediction list as written by the analysis.
        service_name: Predicted affected service, trimmed.
        confidence_percent: Confidence the analysis assigned, 0-100 as written.
            Not clamped; the value is only displayed.
        description: Why the service is expected to break.
    """

    kind: Literal["impact_line"] = "impact_line"
    rank: int
    service_name: str
    confidence_percent: int
    description: str


class PlainLine(BaseModel):
    """Any other non-blank line.

    Attributes:
        text: Line text with emphasis markers removed.
        index: Point number for numbered plain-English points ("2. ..."),
            None for ordinary lines.
    """

    kind: Literal["plain_line"] = "plain_line"
    text: str
    index: int | None = None


InsightBlock = Annotated[
    Union[MainHeader, SectionHeader, SubBullet, Bullet, ImpactLine, PlainLine],
    Field(discriminator="kind"),
]


class InsightDocument(BaseModel):
    """Parsed form of one free-text insight field.

    Attributes:
        field: Which ChangeRecord field the text came from. None when the
            text was parsed with the full, field-agnostic rule set.
        blocks: Display blocks in source order. Empty for missing or
            blank input.
    """

    field: InsightField | None = None
    blocks: list[InsightBlock] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.blocks
