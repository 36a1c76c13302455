"""
FastAPI Application - REST API for APL gap analysis.

Endpoints:
    GET    /health                 Health check
    GET    /api/v1/specs           List registered specs and their builds
    POST   /api/v1/traces          Run an APL (or load its cached trace)
    POST   /api/v1/analyses        Trace + divergences + report
    POST   /api/v1/timelines       Optimal timeline played by the rollout search
    POST   /api/v1/timelines/export  Optimal timeline as a replayable APL

All responses are JSON with explicit Pydantic schemas. Errors use
ErrorResponse with a machine-readable ErrorCode.
"""

from typing import Optional, Union
import os

# Environment configuration
APLGAP_ENV = os.getenv("APLGAP_ENV", "development")
APLGAP_CACHE_DIR = os.getenv("APLGAP_CACHE_DIR", None)
APLGAP_LOG_LEVEL = os.getenv("APLGAP_LOG_LEVEL", "INFO")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

API_VERSION = "0.1.0"


def create_app(service=None):
    """
    Create the FastAPI application.

    Args:
        service: Optional AnalysisService instance (creates new if not provided)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Install with: pip install fastapi uvicorn"
        )

    from .. import __version__
    from ..analysis.cache import TraceCache
    from ..analysis.divergence import Divergence
    from ..analysis.trace import Trace
    from ..config import AnalysisConfig
    from ..errors import AplgapError, RuleParseError, UnknownSpecError
    from ..logging_config import configure_logging
    from .service import AnalysisService
    from .schemas import (
        # Request models
        TraceRequest,
        AnalysisRequest,
        TimelineRequest,
        # Response models
        HealthResponse,
        SpecListResponse,
        TraceResponse,
        AnalysisResponse,
        TimelineExportResponse,
        ErrorResponse,
        # Enums
        ErrorCode,
        # Nested models
        AbilityInfo,
        SpecInfo,
        TraceEventModel,
        TraceMetadata,
        DivergenceModel,
        AnalysisSummary,
    )

    configure_logging(APLGAP_LOG_LEVEL, json_format=APLGAP_ENV == "production")

    app = FastAPI(
        title="aplgap API",
        description="""
Decision-quality analysis for action priority lists.

## Flow

1. `POST /api/v1/traces` runs an APL against a spec and build
2. `POST /api/v1/analyses` compares every decision against a bounded-horizon
   rollout search and ranks the divergences
3. `POST /api/v1/timelines` returns the search's own full-fight timeline
4. `POST /api/v1/timelines/export` renders that timeline as an APL that replays it

## Error Codes

| Code | Description |
|------|-------------|
| `RULE_PARSE_ERROR` | APL text is malformed; details name the line |
| `UNKNOWN_SPEC` | Spec id is not registered |
| `VALIDATION_ERROR` | Inconsistent request values |
| `INTERNAL_ERROR` | Engine contract violation |
        """,
        version=API_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if service is None:
        config = AnalysisConfig.from_env()
        cache_dir = APLGAP_CACHE_DIR or config.cache_dir
        service = AnalysisService(
            config=config,
            cache=TraceCache(cache_dir) if cache_dir else None,
        )
    api_service = service

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(mode="json"),
        )

    def error_for(exc: Exception) -> JSONResponse:
        if isinstance(exc, RuleParseError):
            return make_error_response(
                ErrorCode.RULE_PARSE_ERROR,
                str(exc),
                details={"line": exc.line, "list": exc.list_name, "entry": exc.entry, "reason": exc.reason},
            )
        if isinstance(exc, UnknownSpecError):
            return make_error_response(
                ErrorCode.UNKNOWN_SPEC,
                str(exc),
                status_code=404,
                details={"known": exc.known},
            )
        if isinstance(exc, ValueError):
            return make_error_response(ErrorCode.VALIDATION_ERROR, str(exc))
        return make_error_response(ErrorCode.INTERNAL_ERROR, str(exc), status_code=500)

    # =========================================================================
    # Spec Endpoints
    # =========================================================================

    @app.get(
        "/api/v1/specs",
        response_model=SpecListResponse,
        tags=["Specs"],
        summary="List registered specs",
    )
    async def list_specs() -> SpecListResponse:
        specs = []
        for adapter in api_service.list_specs():
            specs.append(SpecInfo(
                spec_id=adapter.spec_id,
                display_name=adapter.display_name,
                resources=adapter.resource_names(),
                abilities=[
                    AbilityInfo(
                        ability_id=ability.ability_id,
                        name=ability.display_name,
                        role=ability.role.value,
                        cooldown=ability.cooldown,
                        charges=ability.charges,
                        off_gcd=ability.off_gcd,
                        filler=ability.ability_id in adapter.filler_abilities,
                    )
                    for ability in adapter.abilities().values()
                ],
                default_builds=list(adapter.default_builds()),
            ))
        return SpecListResponse(specs=specs, count=len(specs))

    # =========================================================================
    # Trace / Analysis Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/traces",
        response_model=TraceResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Malformed APL or build"},
            404: {"model": ErrorResponse, "description": "Unknown spec"},
        },
        tags=["Analysis"],
        summary="Run an APL and return its decision trace",
    )
    async def run_trace(request: TraceRequest) -> Union[TraceResponse, JSONResponse]:
        """
        Run an APL for one build and duration.

        Traces are cached by (build hash, APL hash, duration) when the
        service has a cache directory.
        """
        try:
            run = api_service.run_trace(
                request.spec_id,
                request.apl_text,
                build=request.build.model_dump() if request.build else None,
                build_name=request.build_name,
                duration=request.duration,
                use_cache=request.use_cache,
            )
        except (AplgapError, ValueError) as exc:
            return error_for(exc)

        return _convert_trace(run.trace, cached=run.cached, warnings=run.warnings)

    @app.post(
        "/api/v1/analyses",
        response_model=AnalysisResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Malformed APL or build"},
            404: {"model": ErrorResponse, "description": "Unknown spec"},
        },
        tags=["Analysis"],
        summary="Find where an APL diverges from the rollout search",
    )
    async def run_analysis(request: AnalysisRequest) -> Union[AnalysisResponse, JSONResponse]:
        try:
            config = api_service.config_with(
                horizon=request.horizon,
                noise_threshold=request.noise_threshold,
                summary_rows=request.summary_rows,
            )
            result = api_service.analyze(
                request.spec_id,
                request.apl_text,
                build=request.build.model_dump() if request.build else None,
                build_name=request.build_name,
                duration=request.duration,
                use_cache=request.use_cache,
                config=config,
            )
        except (AplgapError, ValueError) as exc:
            return error_for(exc)

        summary = result.summary
        return AnalysisResponse(
            metadata=_convert_metadata(result.run.trace),
            summary=AnalysisSummary(
                total_score=summary.total_score,
                events_checked=summary.events_checked,
                divergences=summary.divergences,
                shortlisted=len(result.report.shortlist),
            ),
            divergences=[_convert_divergence(d) for d in result.divergences],
            shortlist=[_convert_divergence(d) for d in result.report.shortlist],
            markdown=result.report.markdown,
            patterns=result.patterns.to_dict() if result.patterns else None,
            cached=result.run.cached,
            warnings=result.run.warnings,
        )

    @app.post(
        "/api/v1/timelines",
        response_model=TraceResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Invalid build"},
            404: {"model": ErrorResponse, "description": "Unknown spec"},
        },
        tags=["Analysis"],
        summary="Play a whole fight with the rollout search",
    )
    async def run_timeline(request: TimelineRequest) -> Union[TraceResponse, JSONResponse]:
        try:
            trace = api_service.optimal_timeline(
                request.spec_id,
                build=request.build.model_dump() if request.build else None,
                build_name=request.build_name,
                duration=request.duration,
                horizon=request.horizon,
            )
        except (AplgapError, ValueError) as exc:
            return error_for(exc)
        return _convert_trace(trace)

    @app.post(
        "/api/v1/timelines/export",
        response_model=TimelineExportResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Invalid build"},
            404: {"model": ErrorResponse, "description": "Unknown spec"},
        },
        tags=["Analysis"],
        summary="Export the optimal timeline as APL text",
    )
    async def export_timeline(request: TimelineRequest) -> Union[TimelineExportResponse, JSONResponse]:
        """
        Play a whole fight with the rollout search and return an APL that
        replays it, one time-gated entry per cast.
        """
        try:
            trace, apl_text = api_service.export_timeline(
                request.spec_id,
                build=request.build.model_dump() if request.build else None,
                build_name=request.build_name,
                duration=request.duration,
                horizon=request.horizon,
            )
        except (AplgapError, ValueError) as exc:
            return error_for(exc)
        return TimelineExportResponse(
            metadata=_convert_metadata(trace),
            apl_text=apl_text,
            gcd_count=len(trace.on_gcd_events),
        )

    # =========================================================================
    # Health & Info
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="aplgap",
            version=__version__,
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "aplgap API",
            "version": API_VERSION,
            "docs": "/api/docs",
            "health": "/health",
        }

    # =========================================================================
    # Conversion Helpers
    # =========================================================================

    def _convert_metadata(trace: Trace) -> TraceMetadata:
        return TraceMetadata(**trace.metadata())

    def _convert_trace(trace: Trace, cached: bool = False, warnings=None) -> TraceResponse:
        return TraceResponse(
            metadata=_convert_metadata(trace),
            events=[
                TraceEventModel(
                    gcd=event.gcd,
                    time=event.time,
                    ability=event.ability_id,
                    condition=event.condition,
                    list_name=event.list_name,
                    off_gcd=event.off_gcd,
                    note=event.note,
                    snapshot=event.snapshot.to_dict(),
                    post=event.post.to_dict() if event.post is not None else None,
                )
                for event in trace.events
            ],
            event_count=len(trace.events),
            ability_counts=trace.ability_counts(),
            cached=cached,
            warnings=list(warnings or []),
        )

    def _convert_divergence(d: Divergence) -> DivergenceModel:
        return DivergenceModel(
            gcd=d.gcd,
            time=d.time,
            optimal=d.optimal,
            optimal_score=d.optimal_score,
            actual=d.actual,
            actual_immediate=d.actual_immediate,
            actual_score=d.actual_score,
            delta=d.delta,
            condition=d.condition,
            list_name=d.list_name,
            occurrences=d.occurrences,
            impact_pct=d.impact_pct,
            confidence=d.confidence.value,
            branch_delta=d.branch_delta,
            hint=d.hint,
            frequency=d.frequency,
            snapshot=d.snapshot.to_dict(),
        )

    return app


# For running directly: uvicorn aplgap.api.app:app
app = create_app()
