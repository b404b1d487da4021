"""
Tests for health probes, metrics and request logging.
"""

import logging

from fastapi.testclient import TestClient

from usermessages.main import app
from usermessages.storage import Base, engine


class TestHealth:

    def test_live(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_schema(self):
        Base.metadata.drop_all(bind=engine)
        # no context manager: the lifespan would create the tables again
        bare = TestClient(app)

        response = bare.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"


class TestMetrics:

    def test_metrics_exposition(self, client, post_message):
        post_message()
        client.get("/messages/999")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        body = response.text
        assert "http_requests_total" in body
        assert 'message_operations_total{operation="create",result="created"}' in body
        assert 'message_operations_total{operation="get",result="not_found"}' in body
        assert "request_latency_seconds_bucket" in body

    def test_route_template_used_as_path_label(self, client, post_message):
        created = post_message()
        client.get(f"/messages/{created['id']}")

        body = client.get("/metrics").text

        assert 'path="/messages/{message_id}"' in body

    def test_metrics_not_self_counted(self, client):
        client.get("/metrics")

        body = client.get("/metrics").text

        assert 'path="/metrics"' not in body


class TestRequestLogging:

    def test_request_id_header(self, client):
        response = client.get("/health/live")

        assert len(response.headers["x-request-id"]) == 36

    def test_message_fields_in_request_log(self, client, post_message, caplog):
        created = post_message()

        with caplog.at_level(logging.INFO, logger="usermessages.requests"):
            client.delete(f"/messages/{created['id']}")

        records = [r for r in caplog.records if r.name == "usermessages.requests"]
        assert records
        record = records[-1]
        assert record.operation == "delete"
        assert record.result == "deleted"
        assert record.message_id == created["id"]
        assert record.status == 204
