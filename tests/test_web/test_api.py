from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from proxy_log_analyzer.anomaly.detector import AnomalyDetector
from proxy_log_analyzer.core.analytics import utc_now
from proxy_log_analyzer.llm.client import LLMClientError
from proxy_log_analyzer.web.app import create_app

CSV_CONTENT = "\n".join([
    "timestamp,sourceIp,userId,destinationUrl,action,category,responseTime",
    "2025-06-15T10:30:00Z,192.168.1.100,user001,https://example.com/,ALLOW,Business,150",
    "2025-06-15T10:31:00Z,192.168.1.101,user002,https://phish-site.com/login,BLOCK,Phishing,90",
    "bad,line",
    "2025-06-15T10:32:00Z,192.168.1.100,user001,https://example.com/reports,FLAGGED,Business,120",
])

TXT_CONTENT = (
    "2025-06-15 23:48:09.144866 203.146.68.57 user35 http://example1.com/page2 ALLOW Malware 57ms\n"
    "2025-06-15 21:42:09.144884 124.110.59.72 user41 http://example5.com/login BLOCK Social Media 493ms\n"
)


def upload(client, content=CSV_CONTENT, filename="logs.csv", company="1", log_type="1", fmt="csv"):
    return client.post(
        "/api/upload",
        files={"file": (filename, content.encode(), "text/plain")},
        data={"company": company, "logType": log_type, "format": fmt},
    )


@pytest.fixture
def uploaded(client):
    response = upload(client)
    assert response.status_code == 200
    return response.json()


class TestAuth:
    """Test the session login flow"""

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/logs"),
        ("get", "/api/analytics/summary"),
        ("get", "/api/auth/user"),
        ("delete", "/api/admin/delete-all-logs"),
    ])
    def test_requires_login(self, anonymous_client, method, path):
        response = getattr(anonymous_client, method)(path)

        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}

    def test_current_user(self, client):
        response = client.get("/api/auth/user")

        assert response.status_code == 200
        assert response.json()["id"] == "dev@localhost"
        assert response.json()["email"] == "dev@localhost"

    def test_login_with_details(self, anonymous_client):
        anonymous_client.get(
            "/api/login",
            params={"email": "Ana@Example.com", "firstName": "Ana"},
            follow_redirects=False,
        )

        data = anonymous_client.get("/api/auth/user").json()
        assert data["id"] == "ana@example.com"
        assert data["firstName"] == "Ana"

    def test_similar_emails_are_separate_users(self, anonymous_client, storage):
        for email in ("a.b@x.com", "a-b@x.com"):
            anonymous_client.get("/api/login", params={"email": email}, follow_redirects=False)

        assert anonymous_client.get("/api/auth/user").json()["email"] == "a-b@x.com"
        assert storage.get_user("a.b@x.com").email == "a.b@x.com"
        assert storage.get_user("a-b@x.com").email == "a-b@x.com"

    def test_logout(self, client):
        response = client.get("/api/logout", follow_redirects=False)

        assert response.status_code == 302
        assert client.get("/api/logs").status_code == 401

    def test_auth_disabled(self, config, storage):
        config.set("auth.enabled", False)

        with TestClient(create_app(config, storage=storage)) as client:
            assert client.get("/api/logs").status_code == 200
            assert client.get("/api/auth/user").status_code == 401

    def test_health_is_public(self, anonymous_client):
        response = anonymous_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestUpload:
    """Test file upload and parsing"""

    def test_csv_upload(self, client):
        response = upload(client)

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "File uploaded successfully"
        assert data["recordsCreated"] == 3
        assert len(data["parseErrors"]) == 1
        assert data["upload"]["fileName"] == "logs.csv"
        assert data["upload"]["recordCount"] == 3
        assert data["upload"]["uploadedBy"] == "dev@localhost"

    def test_txt_upload(self, client):
        response = upload(client, TXT_CONTENT, filename="logs.txt", fmt="txt")

        assert response.status_code == 200
        assert response.json()["recordsCreated"] == 2

    def test_upload_listed(self, client, uploaded):
        uploads = client.get("/api/uploads").json()

        assert [item["id"] for item in uploads] == [uploaded["upload"]["id"]]

    @pytest.mark.parametrize("kwargs,detail", [
        ({"content": "timestamp,sourceIp\nbad,line"}, "No valid log records found in file"),
        ({"company": "99"}, "Unknown company: 99"),
        ({"company": "acme"}, "Unknown company: acme"),
        ({"log_type": "42"}, "Unknown log type ID: 42"),
        ({"fmt": "xml"}, "xml"),
    ])
    def test_rejected_uploads(self, client, kwargs, detail):
        response = upload(client, **kwargs)

        assert response.status_code == 400
        assert detail in response.json()["detail"]

    def test_missing_file(self, client):
        response = client.post("/api/upload", data={"company": "1", "logType": "1", "format": "csv"})

        assert response.status_code == 400
        assert response.json()["detail"] == "No file uploaded"

    def test_file_too_large(self, config, client):
        config.set("upload.max_bytes", 10)

        response = upload(client)

        assert response.status_code == 400
        assert "File too large" in response.json()["detail"]


class TestLogs:
    """Test log listing routes"""

    def test_pagination(self, client, uploaded):
        first = client.get("/api/logs", params={"page": 1, "limit": 2}).json()
        second = client.get("/api/logs", params={"page": 2, "limit": 2}).json()

        assert first["total"] == 3
        assert [log["action"] for log in first["logs"]] == ["FLAGGED", "BLOCK"]
        assert [log["action"] for log in second["logs"]] == ["ALLOW"]
        assert first["logs"][0]["sourceIp"] == "192.168.1.100"

    def test_action_filter(self, client, uploaded):
        data = client.get("/api/logs", params={"action": "block"}).json()

        assert data["total"] == 1
        assert data["logs"][0]["destinationUrl"] == "https://phish-site.com/login"

    def test_invalid_query_is_400(self, client):
        response = client.get("/api/logs", params={"page": 0})

        assert response.status_code == 400

    def test_timeline_range_empty(self, client):
        assert client.get("/api/logs/timeline-range").json() == {
            "earliestTimestamp": None,
            "latestTimestamp": None,
            "totalLogs": 0,
        }

    def test_timeline_range(self, client, uploaded):
        data = client.get("/api/logs/timeline-range").json()

        assert data["earliestTimestamp"] == "2025-06-15T10:30:00"
        assert data["latestTimestamp"] == "2025-06-15T10:32:00"
        assert data["totalLogs"] == 3

    def test_by_ids(self, client, uploaded):
        ids = [log["id"] for log in client.get("/api/logs").json()["logs"]]

        response = client.post("/api/logs/by-ids", json={"logIds": [ids[2], 12345, ids[0]]})

        assert response.status_code == 200
        assert [log["id"] for log in response.json()] == [ids[2], ids[0]]

    def test_flow(self, client, storage, make_entry):
        now = utc_now()
        storage.create_logs([
            make_entry(timestamp=now - timedelta(minutes=30)),
            make_entry(timestamp=now - timedelta(minutes=5)),
            make_entry(timestamp=now - timedelta(hours=3)),
        ])

        hour = client.get("/api/logs/flow", params={"timeRange": "1h"}).json()
        six_hours = client.get("/api/logs/flow", params={"timeRange": "6h"}).json()

        assert len(hour) == 2
        assert hour[0]["timestamp"] < hour[1]["timestamp"]
        assert len(six_hours) == 3

    def test_flow_invalid_range(self, client):
        response = client.get("/api/logs/flow", params={"timeRange": "2h"})

        assert response.status_code == 400
        assert "Invalid time range" in response.json()["detail"]


class TestAnalytics:
    """Test dashboard analytics routes"""

    def test_stats(self, client, uploaded):
        data = client.get("/api/analytics/stats").json()

        assert data == {
            "totalLogs": 3,
            "recentUploads": 1,
            "anomalies": 0,
            "companies": 1,
            "blockedRequests": 1,
            "uniqueIPs": 2,
            "highRiskEvents": 1,
        }

    def test_top_ips(self, client, uploaded):
        data = client.get("/api/analytics/top-ips").json()

        assert data == [
            {"sourceIp": "192.168.1.100", "eventCount": 2, "riskScore": 0.0, "status": "Low Risk"},
            {"sourceIp": "192.168.1.101", "eventCount": 1, "riskScore": 10.0, "status": "Low Risk"},
        ]

    def test_summary(self, client, uploaded):
        data = client.get("/api/analytics/summary").json()

        assert data["totalEvents"] == 3
        assert data["blockedRequests"] == 1
        assert data["uniqueIPs"] == 2
        assert data["urlSecurityAnalytics"]["blockedUrls"][0]["domain"] == "phish-site.com"
        assert data["userSecurityAnalytics"]["abnormalAccess"][0]["userId"] == "user001"

    def test_summary_date_filter(self, client, uploaded):
        data = client.get(
            "/api/analytics/summary",
            params={"startDate": "2025-06-15T10:31:00", "endDate": "2025-06-15T10:31:30"},
        ).json()

        assert data["totalEvents"] == 1

    def test_summary_empty(self, client):
        data = client.get("/api/analytics/summary").json()

        assert data["totalEvents"] == 0
        assert len(data["patterns"]["hourly"]) == 24


class TestAnomalies:
    """Test the anomaly detection route"""

    def test_detect(self, client, uploaded, fake_llm):
        response = client.post("/api/anomalies/detect", json={"sensitivity": "high"})

        assert response.status_code == 200
        data = response.json()
        assert data["anomalies"][0]["severity"] == "high"
        assert data["summary"]["anomaliesFound"] == 1
        prompt = fake_llm.calls[0]["messages"][1]["content"]
        assert "3 web proxy log entries" in prompt
        assert "2025-06-15T10:30:00 to 2025-06-15T10:32:00" in prompt

    def test_detect_selected_ids(self, client, uploaded, fake_llm):
        ids = [log["id"] for log in client.get("/api/logs").json()["logs"]]

        response = client.post(
            "/api/anomalies/detect",
            json={"logIds": ids[:1], "timeRange": "last hour"},
        )

        assert response.status_code == 200
        prompt = fake_llm.calls[0]["messages"][1]["content"]
        assert "1 web proxy log entries covering last hour" in prompt

    def test_log_cap(self, config, client, uploaded, fake_llm):
        config.set("anomaly.max_logs", 2)

        client.post("/api/anomalies/detect", json={})

        prompt = fake_llm.calls[0]["messages"][1]["content"]
        assert "2 web proxy log entries" in prompt
        assert "2025-06-15T10:31:00 to 2025-06-15T10:32:00" in prompt

    def test_no_logs(self, client):
        response = client.post("/api/anomalies/detect", json={})

        assert response.status_code == 400
        assert response.json()["detail"] == "No logs found for the selected criteria"

    def test_not_configured(self, config, storage):
        with TestClient(create_app(config, storage=storage)) as client:
            client.get("/api/login", follow_redirects=False)
            response = client.post("/api/anomalies/detect", json={})

        assert response.status_code == 503

    def test_upstream_failure(self, config, storage, chat_client, make_entry):
        storage.create_logs([make_entry()])
        detector = AnomalyDetector(chat_client(error=LLMClientError("Rate limit reached")))

        with TestClient(create_app(config, storage=storage, detector=detector)) as client:
            client.get("/api/login", follow_redirects=False)
            response = client.post("/api/anomalies/detect", json={})

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to analyze logs for anomalies: Rate limit reached"


class TestAdmin:
    """Test deletion and reference data routes"""

    def test_delete_all(self, client, uploaded):
        response = client.delete("/api/admin/delete-all-logs")

        assert response.status_code == 200
        assert response.json()["deletedCount"] == 3
        assert client.get("/api/logs").json()["total"] == 0

    def test_delete_company(self, client, uploaded):
        response = client.delete("/api/admin/delete-company-logs/1")

        assert response.status_code == 200
        assert response.json() == {"message": "Logs for company 1 deleted successfully", "deletedCount": 3}

    def test_delete_unknown_company(self, client):
        assert client.delete("/api/admin/delete-company-logs/99").status_code == 404

    def test_companies(self, client):
        data = client.get("/api/companies").json()

        assert [(item["id"], item["name"]) for item in data] == [(1, "dev")]

    def test_log_types(self, client):
        data = client.get("/api/log-types").json()

        assert data[0]["id"] == 1
        assert data[0]["name"] == "ZScaler Web Proxy Log"
        assert data[0]["tableName"] == "proxy_logs"
