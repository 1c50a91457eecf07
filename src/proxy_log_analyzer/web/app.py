import logging
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from ..anomaly.detector import (
    AnomalyDetectionFailure,
    AnomalyDetectionRequest,
    AnomalyDetector,
    AnomalyReport,
)
from ..core.analytics import calculate_analytics, utc_now
from ..core.results import AnalyticsBundle
from ..llm.client import ChatCompletionClient
from ..parsers.base import LogEntry, ParserError, ParserFactory
from ..parsers.registry import create_parser_factory
from ..storage.database import Database
from ..storage.repository import LogStorage
from ..utils.config import Config
from ..utils.constants import FLOW_TIME_RANGES
from ..utils.helpers import format_bytes, safe_int, to_naive_utc
from ..utils.logging_utils import log_duration, setup_logging
from . import auth
from .schemas import (
    CompanyOut,
    DeleteResponse,
    DetectAnomaliesRequest,
    LogIdsRequest,
    LogsPage,
    LogStats,
    LogTypeOut,
    TimelineRange,
    TopSourceIP,
    UploadOut,
    UploadResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["logs"], dependencies=[Depends(auth.require_user)])


def get_storage(request: Request) -> LogStorage:
    return request.app.state.storage


def get_parser_factory(request: Request) -> ParserFactory:
    return request.app.state.parser_factory


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    return to_naive_utc(value) if value is not None else None


@router.post("/upload", response_model=UploadResponse)
def upload_logs(
    request: Request,
    file: Optional[UploadFile] = File(None),
    company: Optional[str] = Form(None),
    log_type: Optional[str] = Form(None, alias="logType"),
    format: Optional[str] = Form(None),
    user_id: Optional[str] = Depends(auth.require_user),
    storage: LogStorage = Depends(get_storage),
    factory: ParserFactory = Depends(get_parser_factory),
):
    """Parse an uploaded log file and store its records"""
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    content = file.file.read()
    max_bytes = request.app.state.config.get_int("upload.max_bytes")
    if max_bytes and len(content) > max_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File too large: {format_bytes(len(content))} exceeds {format_bytes(max_bytes)}",
        )

    company_id = safe_int(company, None)
    if company_id is None or storage.get_company(company_id) is None:
        raise HTTPException(status_code=400, detail=f"Unknown company: {company}")

    log_type_id = safe_int(log_type, None)
    if log_type_id is None:
        raise HTTPException(status_code=400, detail=f"Unknown log type ID: {log_type}")
    if not format:
        raise HTTPException(status_code=400, detail="File format is required")

    text = content.decode("utf-8", errors="replace")
    try:
        with log_duration(logger, f"Parsed {file.filename} in {{duration}}"):
            result = factory.parse(text, format, company_id, log_type_id)
    except ParserError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not result.logs:
        raise HTTPException(status_code=400, detail="No valid log records found in file")

    created, upload = storage.store_upload(
        result.logs,
        file_name=file.filename,
        file_size=len(content),
        log_type_id=log_type_id,
        company_id=company_id,
        format=format.lower(),
        uploaded_by=user_id,
    )
    logger.info(
        f"Upload {upload.id}: {len(created)} records from {file.filename}, "
        f"{len(result.parse_errors)} lines skipped"
    )

    return UploadResponse(
        message="File uploaded successfully",
        upload=UploadOut.model_validate(upload),
        records_created=len(created),
        parse_errors=result.parse_errors,
    )


@router.get("/logs", response_model=LogsPage)
def list_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=1000),
    company_id: Optional[int] = Query(None, alias="companyId"),
    action: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    storage: LogStorage = Depends(get_storage),
):
    logs, total = storage.get_logs(
        page=page,
        limit=limit,
        company_id=company_id,
        action=action,
        start_date=_naive(start_date),
        end_date=_naive(end_date),
    )
    return LogsPage(logs=logs, total=total)


@router.get("/logs/timeline-range", response_model=TimelineRange)
def timeline_range(
    company_id: Optional[int] = Query(None, alias="companyId"),
    storage: LogStorage = Depends(get_storage),
):
    result = storage.get_log_timestamp_range(company_id)
    return TimelineRange(
        earliest_timestamp=result["earliestTimestamp"],
        latest_timestamp=result["latestTimestamp"],
        total_logs=result["totalLogs"],
    )


@router.post("/logs/by-ids", response_model=List[LogEntry])
def logs_by_ids(body: LogIdsRequest, storage: LogStorage = Depends(get_storage)):
    return storage.get_logs_by_ids(body.log_ids)


@router.get("/logs/flow", response_model=List[LogEntry])
def log_flow(
    time_range: str = Query("1h", alias="timeRange"),
    company_id: Optional[int] = Query(None, alias="companyId"),
    storage: LogStorage = Depends(get_storage),
):
    """Recent logs, oldest first, for the live flow view"""
    seconds = FLOW_TIME_RANGES.get(time_range)
    if seconds is None:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid time range: {time_range}. Use one of {', '.join(FLOW_TIME_RANGES)}",
        )
    return storage.get_recent_logs(utc_now() - timedelta(seconds=seconds), company_id)


@router.get("/analytics/stats", response_model=LogStats)
def analytics_stats(
    company_id: Optional[int] = Query(None, alias="companyId"),
    storage: LogStorage = Depends(get_storage),
):
    return LogStats.model_validate(storage.get_log_stats(company_id))


@router.get("/analytics/top-ips", response_model=List[TopSourceIP])
def analytics_top_ips(
    limit: int = Query(10, ge=1, le=100),
    company_id: Optional[int] = Query(None, alias="companyId"),
    storage: LogStorage = Depends(get_storage),
):
    return [TopSourceIP.model_validate(row) for row in storage.get_top_source_ips(limit, company_id)]


@router.get("/analytics/summary", response_model=AnalyticsBundle)
def analytics_summary(
    company_id: Optional[int] = Query(None, alias="companyId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    storage: LogStorage = Depends(get_storage),
):
    logs = storage.find_logs(company_id, _naive(start_date), _naive(end_date))
    with log_duration(logger, f"Analytics over {len(logs)} logs computed in {{duration}}"):
        return calculate_analytics(logs)


@router.post("/anomalies/detect", response_model=AnomalyReport)
def detect_anomalies(
    request: Request,
    body: DetectAnomaliesRequest,
    storage: LogStorage = Depends(get_storage),
):
    detector: Optional[AnomalyDetector] = request.app.state.detector
    if detector is None:
        raise HTTPException(status_code=503, detail="Anomaly detection is not configured")

    max_logs = request.app.state.config.get_int("anomaly.max_logs", 500)
    if body.log_ids:
        logs = storage.get_logs_by_ids(body.log_ids)[:max_logs]
    else:
        logs = storage.find_logs(
            body.company_id, _naive(body.start_date), _naive(body.end_date), limit=max_logs
        )

    if not logs:
        raise HTTPException(status_code=400, detail="No logs found for the selected criteria")

    time_range = body.time_range or describe_time_range(logs)
    try:
        return detector.detect(AnomalyDetectionRequest(
            logs=logs,
            time_range=time_range,
            sensitivity=body.sensitivity,
            temperature=body.temperature,
            max_tokens=body.max_tokens,
        ))
    except AnomalyDetectionFailure as e:
        raise HTTPException(status_code=500, detail=str(e))


def describe_time_range(logs: List[LogEntry]) -> str:
    earliest = min(entry.timestamp for entry in logs)
    latest = max(entry.timestamp for entry in logs)
    return f"{earliest.isoformat()} to {latest.isoformat()}"


@router.delete("/admin/delete-all-logs", response_model=DeleteResponse)
def delete_all_logs(storage: LogStorage = Depends(get_storage)):
    deleted = storage.delete_all_logs()
    return DeleteResponse(message="All logs deleted successfully", deleted_count=deleted)


@router.delete("/admin/delete-company-logs/{company_id}", response_model=DeleteResponse)
def delete_company_logs(company_id: int, storage: LogStorage = Depends(get_storage)):
    if storage.get_company(company_id) is None:
        raise HTTPException(status_code=404, detail=f"Company {company_id} not found")
    deleted = storage.delete_company_logs(company_id)
    return DeleteResponse(
        message=f"Logs for company {company_id} deleted successfully",
        deleted_count=deleted,
    )


@router.get("/companies", response_model=List[CompanyOut])
def list_companies(storage: LogStorage = Depends(get_storage)):
    return [CompanyOut.model_validate(company) for company in storage.get_companies()]


@router.get("/log-types", response_model=List[LogTypeOut])
def list_log_types(storage: LogStorage = Depends(get_storage)):
    return [LogTypeOut.model_validate(log_type) for log_type in storage.get_log_types()]


@router.get("/uploads", response_model=List[UploadOut])
def list_uploads(storage: LogStorage = Depends(get_storage)):
    return [UploadOut.model_validate(upload) for upload in storage.get_uploads()]


def create_detector(config: Config) -> Optional[AnomalyDetector]:
    """Build the anomaly detector, or None when no API key is configured"""
    api_key = config.get("llm.api_key")
    if not api_key:
        logger.warning("No OpenAI API key configured; anomaly detection disabled")
        return None

    client = ChatCompletionClient(
        api_key=api_key,
        model=config.get("llm.model"),
        base_url=config.get("llm.base_url"),
        timeout=config.get_float("llm.timeout"),
    )
    return AnomalyDetector(client, prompts_dir=config.get("anomaly.prompts_dir"))


def create_app(
    config: Optional[Config] = None,
    storage: Optional[LogStorage] = None,
    detector: Optional[AnomalyDetector] = None,
    parser_factory: Optional[ParserFactory] = None,
) -> FastAPI:
    """Create the REST application

    Args:
        config: Configuration; defaults plus environment when omitted
        storage: Log storage; built from ``database.url`` when omitted
        detector: Anomaly detector; built from the ``llm`` section when omitted
        parser_factory: Parser registry; all built-in log types when omitted

    Returns:
        Configured FastAPI application
    """
    config = config or Config()
    config.validate()

    parser_factory = parser_factory or create_parser_factory()
    if storage is None:
        database = Database(config.get("database.url"), echo=config.get_bool("database.echo", False))
        database.create_all()
        storage = LogStorage(database)
    storage.initialize_defaults(parser_factory.log_types())

    app = FastAPI(title="Proxy Log Analyzer API")
    app.state.config = config
    app.state.storage = storage
    app.state.parser_factory = parser_factory
    app.state.detector = detector if detector is not None else create_detector(config)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=config.get("auth.session_secret"),
        max_age=config.get_int("auth.session_max_age"),
        same_site="lax",
    )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Database error"})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(status_code=400, content={"detail": errors})

    @app.get("/health")
    def health():
        return {"status": "ok", "timestamp": utc_now().isoformat()}

    app.include_router(auth.router)
    app.include_router(router)
    return app


def start(config_path: Optional[str] = None):
    """Run the API server with uvicorn"""
    import uvicorn

    config = Config(config_path)
    setup_logging(
        level=config.get("logging.level", "INFO"),
        log_file=config.get("logging.file"),
        json_format=config.get_bool("logging.json_format", False),
    )
    uvicorn.run(
        create_app(config),
        host=config.get("server.host", "0.0.0.0"),
        port=config.get_int("server.port", 8000),
    )


if __name__ == "__main__":
    start()
