"""Pydantic models and text parsing for the batch analysis server responses.

The analysis server relays one chat-completion style object per image. Each
object either carries the model's markdown-ish analysis text or an
``{"error": true, "message": ...}`` marker. Downstream code only ever sees
normalized ``AnalysisResult`` instances.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from snapsight.domain.errors import AnalysisFailure
from snapsight.domain.models import AnalysisResult

MAX_TITLE_LENGTH = 100
MAX_CITATIONS = 2

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL)
_CITATION_MARKER = re.compile(r"\[\d+\]")
_SUBHEADING = re.compile(r"^##\s+([^\n]+)", re.MULTILINE)
_HEADING = re.compile(r"^#\s+([^\n]+)", re.MULTILINE)

_TITLE = re.compile(r"Title:\s*(.*?)(?:\n|\Z)", re.IGNORECASE)
_DESCRIPTION = re.compile(
    r"^Description:?[ \t]*\n?(.*?)(?=\nKey Points|\n\n|\Z)",
    re.IGNORECASE | re.DOTALL | re.MULTILINE,
)
_KEY_POINTS = re.compile(
    r"^Key Points:?(.*?)(?=\nReference|\n\n|\Z)",
    re.IGNORECASE | re.DOTALL | re.MULTILINE,
)
_REFERENCE = re.compile(r"Reference:\s*(.*?)(?:\n|\Z)", re.IGNORECASE)
_REFERENCES_BLOCK = re.compile(r"References:?\n(.*?)(?=\n\n|\Z)", re.IGNORECASE | re.DOTALL)
_BULLET = re.compile(r"^[-•*]\s*")

_SECTION_LABELS = ("Title:", "Description:", "Key Points:", "Reference:")


class ResponseContractError(AnalysisFailure):
    """Raised when the analysis server response cannot be validated."""


class _ChoiceMessage(BaseModel):
    content: Optional[str] = None


class _Choice(BaseModel):
    message: _ChoiceMessage = Field(default_factory=_ChoiceMessage)


class BatchItemResponse(BaseModel):
    error: bool = False
    message: Optional[str] = None
    choices: List[_Choice] = Field(default_factory=list)
    citations: List[str] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @property
    def text(self) -> str:
        if self.choices and self.choices[0].message.content:
            return self.choices[0].message.content
        return "No analysis available"


class BatchAnalysisResponse(BaseModel):
    results: List[BatchItemResponse]

    @classmethod
    def from_payload(cls, payload: Any) -> "BatchAnalysisResponse":
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise ResponseContractError(f"Invalid batch analysis response: {exc}") from exc


def failed_result(uri: str, message: str) -> AnalysisResult:
    """Item-level failure payload for ``uri``."""

    return AnalysisResult(
        uri=uri,
        title="Analysis Failed",
        description="There was an error analyzing this image.",
        key_points=["API error occurred", message],
        reference="N/A",
        error=message,
    )


def _clean(text: str) -> str:
    cleaned = _THINK_BLOCK.sub("", text).strip()
    cleaned = _CITATION_MARKER.sub("", cleaned)
    cleaned = _SUBHEADING.sub(r"\1:", cleaned)
    return _HEADING.sub(r"Title: \1", cleaned)


def _paragraphs(text: str) -> List[str]:
    return [part.strip() for part in text.split("\n\n") if part.strip()]


def _extract_title(text: str) -> str:
    match = _TITLE.search(text)
    if match and match.group(1).strip():
        title = match.group(1).strip()
    else:
        first_line = text.split("\n", 1)[0].strip()
        title = first_line or "Analysis Results"
    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - 3] + "..."
    return title


def _extract_description(text: str) -> str:
    match = _DESCRIPTION.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    paragraphs = _paragraphs(text)
    if not paragraphs:
        return ""
    if "Title:" not in paragraphs[0]:
        return paragraphs[0]
    for paragraph in paragraphs:
        if len(paragraph) > 50 and not any(label in paragraph for label in _SECTION_LABELS):
            return paragraph
    return ""


def _extract_key_points(text: str) -> List[str]:
    points: List[str] = []
    match = _KEY_POINTS.search(text)
    if match:
        for line in match.group(1).split("\n"):
            line = line.strip()
            if line[:1] in ("-", "•", "*"):
                point = _BULLET.sub("", line)
                if point:
                    points.append(point)
    if points:
        return points

    # Free-form answers: every paragraph after the first becomes a point.
    candidates = [
        paragraph
        for paragraph in _paragraphs(text)
        if len(paragraph) > 20 and not any(label in paragraph for label in _SECTION_LABELS)
    ]
    return [_BULLET.sub("", paragraph).strip() for paragraph in candidates[1:]]


def _extract_reference(text: str) -> str:
    match = _REFERENCE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    match = _REFERENCES_BLOCK.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return "N/A"


def parse_analysis_text(
    uri: str,
    text: str,
    citations: Sequence[str] = (),
) -> AnalysisResult:
    """Turn the model's free text into a structured ``AnalysisResult``.

    Reasoning blocks and ``[n]`` citation markers are removed, markdown
    headings are folded into ``Label:`` form, and the Title, Description,
    Key Points and Reference sections are extracted with paragraph based
    fallbacks when the model ignored the requested layout. Only the first
    two citations are kept.
    """

    cleaned = _clean(text or "")
    return AnalysisResult(
        uri=uri,
        title=_extract_title(cleaned),
        description=_extract_description(cleaned),
        key_points=_extract_key_points(cleaned),
        reference=_extract_reference(cleaned),
        citations=list(citations)[:MAX_CITATIONS],
    )


def to_analysis_result(uri: str, item: BatchItemResponse) -> AnalysisResult:
    if item.error:
        return failed_result(uri, item.message or "Unknown error")
    return parse_analysis_text(uri, item.text, item.citations)


__all__ = [
    "BatchAnalysisResponse",
    "BatchItemResponse",
    "ResponseContractError",
    "failed_result",
    "parse_analysis_text",
    "to_analysis_result",
]
