from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class AnalysisResult(BaseModel):
    """Analysis returned by the vision backend for a single capture.

    ``error`` is set when the backend produced an item-level failure payload
    instead of an analysis.
    """

    uri: str
    title: str = "Analysis Results"
    description: str = ""
    key_points: List[str] = Field(default_factory=list)
    reference: str = "N/A"
    citations: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class RawPhoto(BaseModel):
    """Photo handed back by the capture source."""

    uri: str
    width: Optional[int] = None
    height: Optional[int] = None


class Capture(BaseModel):
    """Domain model for one captured photo"""

    uri: str
    timestamp: int
    custom_prompt: Optional[str] = None
    analyzed: bool = False
    analysis: Optional[AnalysisResult] = None
    analysis_failed: bool = False
    failed_reason: Optional[str] = None
    analysis_date: Optional[datetime] = None

    model_config = {"from_attributes": True}
