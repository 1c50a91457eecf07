import json
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from proxy_log_analyzer.anomaly.detector import AnomalyDetector
from proxy_log_analyzer.parsers.base import LogEntry
from proxy_log_analyzer.storage.database import Database
from proxy_log_analyzer.storage.repository import LogStorage
from proxy_log_analyzer.utils.config import Config
from proxy_log_analyzer.web.app import create_app


class FakeChatClient:
    """Stands in for ChatCompletionClient; records calls and replays a response"""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else {"anomalies": []}
        self.error = error
        self.calls = []

    def complete(self, messages, temperature=0.2, max_tokens=None, json_response=True):
        self.calls.append({
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self.error is not None:
            raise self.error
        if isinstance(self.response, str):
            return self.response
        return json.dumps(self.response)


@pytest.fixture
def make_entry():
    """Factory for log entries with sensible defaults"""

    def _make(**overrides):
        fields = {
            "timestamp": datetime(2025, 6, 15, 10, 30),
            "source_ip": "192.168.1.100",
            "user_id": "user001",
            "destination_url": "https://example.com/",
            "action": "ALLOW",
            "category": "Business",
            "response_time": 150,
            "company_id": 1,
        }
        fields.update(overrides)
        return LogEntry(**fields)

    return _make


@pytest.fixture
def config():
    config = Config.from_dict({
        "database": {"url": "sqlite:///:memory:"},
        "auth": {"enabled": True, "session_secret": "test-secret"},
    })
    # Never pick up a real key from the environment
    config.set("llm.api_key", None)
    return config


@pytest.fixture
def storage():
    database = Database("sqlite:///:memory:")
    database.create_all()
    yield LogStorage(database)
    database.dispose()


@pytest.fixture
def chat_client():
    """Factory for fake chat clients with a canned response or error"""
    return FakeChatClient


@pytest.fixture
def fake_llm():
    return FakeChatClient(response={
        "anomalies": [
            {
                "logIds": [1],
                "severity": "high",
                "category": "Malware",
                "description": "Access to a known malware domain",
                "indicators": ["malware domain"],
                "recommendedAction": "Isolate the host",
                "confidence": 0.9,
            }
        ],
        "summary": {
            "totalLogsAnalyzed": 1,
            "anomaliesFound": 1,
            "highestSeverity": "high",
            "commonPatterns": ["malware access"],
            "recommendations": ["Review endpoint"],
        },
    })


@pytest.fixture
def app(config, storage, fake_llm):
    return create_app(config, storage=storage, detector=AnomalyDetector(fake_llm))


@pytest.fixture
def anonymous_client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def client(app):
    """Client with a logged in session"""
    with TestClient(app) as client:
        response = client.get("/api/login", follow_redirects=False)
        assert response.status_code == 302
        yield client
