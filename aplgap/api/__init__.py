"""
API Module - HTTP interface to the analysis engine.

Clients:
1. List specs and their reference builds
2. Submit APL text to get a decision trace
3. Submit APL text to get ranked divergences and a report
4. Request the rollout search's own timeline

Traces are cached on disk when APLGAP_CACHE_DIR is set. No other state is kept.
"""

from .schemas import (
    # Requests
    TraceRequest,
    AnalysisRequest,
    TimelineRequest,
    # Responses
    HealthResponse,
    SpecListResponse,
    TraceResponse,
    AnalysisResponse,
    ErrorResponse,
    ErrorCode,
    # Shared
    BuildModel,
    SpecInfo,
    DivergenceModel,
)
from .service import AnalysisService, AnalysisRun, TraceRun

__all__ = [
    # Requests
    "TraceRequest",
    "AnalysisRequest",
    "TimelineRequest",
    # Responses
    "HealthResponse",
    "SpecListResponse",
    "TraceResponse",
    "AnalysisResponse",
    "ErrorResponse",
    "ErrorCode",
    # Shared
    "BuildModel",
    "SpecInfo",
    "DivergenceModel",
    # Service
    "AnalysisService",
    "AnalysisRun",
    "TraceRun",
]
