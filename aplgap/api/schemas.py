"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the wire contract of the analysis service. Engine
objects (traces, divergences, reports) are dataclasses; the app converts
them into these models at the boundary.

Error Codes:
- RULE_PARSE_ERROR: APL text could not be parsed (details name the line and list)
- UNKNOWN_SPEC: No adapter is registered for the spec id
- VALIDATION_ERROR: Request values are inconsistent (e.g. build for another spec)
- INTERNAL_ERROR: Engine contract violation; indicates a defect
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    RULE_PARSE_ERROR = "RULE_PARSE_ERROR"
    UNKNOWN_SPEC = "UNKNOWN_SPEC"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class TraceKindModel(str, Enum):
    APL = "apl"
    OPTIMAL = "optimal"


class ConfidenceLevel(str, Enum):
    """Divergence confidence labels."""
    HIGH = "high"
    LOW = "low"


# =============================================================================
# Shared Models
# =============================================================================

class BuildModel(BaseModel):
    """Build configuration as sent by clients."""
    name: str = "custom"
    haste: float = Field(0.0, ge=0.0)
    target_count: int = Field(1, ge=1)
    talents: dict[str, Any] = Field(default_factory=dict)
    flags: dict[str, Any] = Field(default_factory=dict)
    overrides: dict[str, Any] = Field(default_factory=dict)


class AbilityInfo(BaseModel):
    ability_id: str
    name: str
    role: str
    cooldown: float = 0.0
    charges: int = 1
    off_gcd: bool = False
    filler: bool = False


class SpecInfo(BaseModel):
    """A registered spec adapter."""
    spec_id: str
    display_name: str
    resources: list[str]
    abilities: list[AbilityInfo] = Field(default_factory=list)
    default_builds: list[str] = Field(default_factory=list)


class TraceEventModel(BaseModel):
    gcd: int
    time: float
    ability: str
    condition: Optional[str] = None
    list_name: Optional[str] = None
    off_gcd: bool = False
    note: Optional[str] = None
    snapshot: dict[str, Any] = Field(default_factory=dict)
    post: Optional[dict[str, Any]] = Field(None, description="State right after the cast")


class TraceMetadata(BaseModel):
    spec_id: str
    build: str
    duration: float
    config_hash: str
    rules_hash: str
    kind: TraceKindModel
    format_version: str


class DivergenceModel(BaseModel):
    gcd: int
    time: float
    optimal: str
    optimal_score: float
    actual: str
    actual_immediate: float
    actual_score: float
    delta: float = Field(..., ge=0.0, description="rollout(optimal) - rollout(actual)")
    condition: Optional[str] = None
    list_name: Optional[str] = None
    occurrences: int = 1
    impact_pct: Optional[float] = Field(None, description="Estimated aggregate impact; None for one-off pairs")
    confidence: ConfidenceLevel
    branch_delta: float = 0.0
    hint: str = ""
    frequency: str = ""
    snapshot: dict[str, Any] = Field(default_factory=dict)


class AnalysisSummary(BaseModel):
    total_score: float
    events_checked: int
    divergences: int
    shortlisted: int


# =============================================================================
# Requests
# =============================================================================

class TraceRequest(BaseModel):
    """Run an APL for one build and duration."""
    spec_id: str
    apl_text: str = Field(..., min_length=1)
    build: Optional[BuildModel] = Field(None, description="Explicit build; overrides build_name")
    build_name: Optional[str] = Field(None, description="One of the adapter's default builds")
    duration: float = Field(120.0, gt=0.0, le=3600.0)
    use_cache: bool = True


class AnalysisRequest(TraceRequest):
    """Run an APL and compare it against the rollout search."""
    horizon: Optional[float] = Field(None, gt=0.0)
    noise_threshold: Optional[float] = Field(None, ge=0.0)
    summary_rows: Optional[int] = Field(None, ge=1)


class TimelineRequest(BaseModel):
    """Let the rollout search play a whole fight."""
    spec_id: str
    build: Optional[BuildModel] = None
    build_name: Optional[str] = None
    duration: float = Field(120.0, gt=0.0, le=3600.0)
    horizon: Optional[float] = Field(None, gt=0.0)


# =============================================================================
# Responses
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str


class SpecListResponse(BaseModel):
    specs: list[SpecInfo]
    count: int


class TraceResponse(BaseModel):
    metadata: TraceMetadata
    events: list[TraceEventModel]
    event_count: int
    ability_counts: dict[str, int] = Field(default_factory=dict)
    cached: bool = False
    warnings: list[str] = Field(default_factory=list)


class AnalysisResponse(BaseModel):
    metadata: TraceMetadata
    summary: AnalysisSummary
    divergences: list[DivergenceModel]
    shortlist: list[DivergenceModel]
    markdown: str
    patterns: Optional[dict[str, Any]] = Field(None, description="Resource flow, burst windows and divergence clusters")
    cached: bool = False
    warnings: list[str] = Field(default_factory=list)


class TimelineExportResponse(BaseModel):
    """Optimal timeline rendered as an APL that replays it."""
    metadata: TraceMetadata
    apl_text: str
    gcd_count: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")
