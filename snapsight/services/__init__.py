"""Service layer: capture orchestration, session wiring and the analysis client."""

from .analysis_client import HttpAnalysisClient
from .orchestrator import CaptureOrchestrator
from .response_contract import ResponseContractError, parse_analysis_text
from .session import CaptureSession, build_default_session

__all__ = [
    "CaptureOrchestrator",
    "CaptureSession",
    "HttpAnalysisClient",
    "ResponseContractError",
    "build_default_session",
    "parse_analysis_text",
]
