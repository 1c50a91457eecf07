from datetime import datetime
from typing import List, Optional

from pydantic import ConfigDict, Field

from ..parsers.base import LogEntry
from ..utils.schema import CamelModel


class OrmModel(CamelModel):
    model_config = ConfigDict(from_attributes=True)


class UserOut(OrmModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CompanyOut(OrmModel):
    id: int
    name: str
    created_at: Optional[datetime] = None


class LogTypeOut(OrmModel):
    id: int
    name: str
    table_name: str
    created_at: Optional[datetime] = None


class UploadOut(OrmModel):
    id: int
    file_name: str
    file_size: int
    log_type_id: Optional[int] = None
    company_id: Optional[int] = None
    format: str
    record_count: int
    uploaded_by: Optional[str] = None
    created_at: Optional[datetime] = None


class UploadResponse(CamelModel):
    message: str
    upload: UploadOut
    records_created: int
    parse_errors: List[str] = Field(default_factory=list)


class LogsPage(CamelModel):
    logs: List[LogEntry]
    total: int


class TimelineRange(CamelModel):
    earliest_timestamp: Optional[datetime] = None
    latest_timestamp: Optional[datetime] = None
    total_logs: int = 0


class LogIdsRequest(CamelModel):
    log_ids: List[int]


class LogStats(CamelModel):
    total_logs: int
    recent_uploads: int
    anomalies: int
    companies: int
    blocked_requests: int
    unique_ips: int = Field(alias="uniqueIPs")
    high_risk_events: int


class TopSourceIP(CamelModel):
    source_ip: str
    event_count: int
    risk_score: float
    status: str


class DetectAnomaliesRequest(CamelModel):
    company_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    log_ids: Optional[List[int]] = None
    time_range: Optional[str] = None
    sensitivity: str = "medium"
    temperature: float = Field(default=0.2, ge=0, le=2)
    max_tokens: int = Field(default=2000, gt=0)


class DeleteResponse(CamelModel):
    message: str
    deleted_count: int
