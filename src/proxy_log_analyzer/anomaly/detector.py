"""
LLM-backed anomaly detection

Fills the prompt templates with a log batch, sends them to the injected
chat completion client and validates the JSON report it returns. All
reasoning about what is anomalous happens on the model side.
"""

import json
import logging
from pathlib import Path
from typing import List, Literal, Optional, Union

from pydantic import Field, ValidationError, field_validator

from ..llm.client import ChatCompletionClient, LLMClientError
from ..parsers.base import LogEntry
from ..utils.constants import SYSTEM_PROMPT_FILE, USER_TEMPLATE_FILE
from ..utils.helpers import ProxyLogError
from ..utils.schema import CamelModel
from ..utils.string_utils import render_template

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

Severity = Literal["low", "medium", "high", "critical"]
SEVERITY_ORDER = ["low", "medium", "high", "critical"]


class AnomalyDetectionFailure(ProxyLogError):
    """Raised when the model call or its response cannot be used"""


class AnomalyDetectionRequest(CamelModel):
    logs: List[LogEntry]
    time_range: str
    sensitivity: str = "medium"
    temperature: float = Field(default=0.2, ge=0, le=2)
    max_tokens: int = Field(default=2000, gt=0)


class Anomaly(CamelModel):
    log_ids: List[int] = Field(default_factory=list)
    severity: Severity
    category: str
    description: str
    indicators: List[str] = Field(default_factory=list)
    recommended_action: str = ""
    confidence: float = Field(default=0.0, ge=0)

    @field_validator("severity", mode="before")
    @classmethod
    def _lower_severity(cls, value):
        return value.lower() if isinstance(value, str) else value


class AnomalySummary(CamelModel):
    total_logs_analyzed: int = 0
    anomalies_found: int = 0
    highest_severity: str = "low"
    common_patterns: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class AnomalyReport(CamelModel):
    anomalies: List[Anomaly] = Field(default_factory=list)
    summary: Optional[AnomalySummary] = None


class AnomalyDetector:
    """Facade over the chat completion client for anomaly reports"""

    def __init__(
        self,
        client: ChatCompletionClient,
        prompts_dir: Optional[Union[str, Path]] = None,
    ):
        self.client = client
        self.prompts_dir = Path(prompts_dir) if prompts_dir else DEFAULT_PROMPTS_DIR

    def detect(self, request: AnomalyDetectionRequest) -> AnomalyReport:
        """Run anomaly detection over a log batch

        Args:
            request: Log batch plus model settings

        Returns:
            Validated report; the summary is always present

        Raises:
            AnomalyDetectionFailure: On prompt loading, transport, JSON or
                schema failure
        """
        logger.info(f"Starting anomaly detection for {len(request.logs)} logs")
        try:
            messages = [
                {"role": "system", "content": self._load_prompt(SYSTEM_PROMPT_FILE)},
                {"role": "user", "content": self.build_prompt(request)},
            ]
            content = self.client.complete(
                messages,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
            logger.debug(f"Response received ({len(content)} chars)")

            report = AnomalyReport.model_validate(json.loads(content or "{}"))
        except (LLMClientError, OSError, ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.error(f"Anomaly detection failed: {e}")
            raise AnomalyDetectionFailure(
                f"Failed to analyze logs for anomalies: {e}"
            ) from e

        if report.summary is None:
            report.summary = AnomalySummary(
                total_logs_analyzed=len(request.logs),
                anomalies_found=len(report.anomalies),
                highest_severity=max(
                    (anomaly.severity for anomaly in report.anomalies),
                    key=SEVERITY_ORDER.index,
                    default="low",
                ),
            )

        logger.info(f"Anomaly detection found {len(report.anomalies)} anomalies")
        return report

    def build_prompt(self, request: AnomalyDetectionRequest) -> str:
        log_data = [
            entry.model_dump(mode="json", by_alias=True, exclude={"company_id"})
            for entry in request.logs
        ]
        return render_template(
            self._load_prompt(USER_TEMPLATE_FILE),
            {
                "logCount": len(request.logs),
                "timeRange": request.time_range,
                "logData": json.dumps(log_data, indent=2),
                "sensitivity": request.sensitivity,
            },
        )

    def _load_prompt(self, name: str) -> str:
        path = self.prompts_dir / name
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise OSError(f"Could not load prompt file: {name}") from e
