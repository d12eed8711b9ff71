"""
Tests for the POST /webhook endpoint.

Tests cover:
- Valid signature: structured and plain messages are stored
- Allow-list drops (200, status "dropped")
- Invalid/missing signature (401)
- Validation errors (422)
"""

import hmac
import hashlib
import json
import os

import pytest
from fastapi.testclient import TestClient

from triage.main import app
from triage.storage import Base, engine


TEST_WEBHOOK_SECRET = os.environ["WEBHOOK_SECRET"]


def compute_signature(body: str, secret: str) -> str:
    """Compute HMAC-SHA256 signature for request body."""
    return hmac.new(
        secret.encode("utf-8"),
        body.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def post_signed(client, body: str, secret: str = TEST_WEBHOOK_SECRET):
    return client.post(
        "/webhook",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Signature": compute_signature(body, secret)
        }
    )


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def urgent_body() -> str:
    return json.dumps({
        "from": "+40712345678",
        "text": "[APP:Server] URGENT: Disk low | 5GB left",
        "source": "SMS",
    })


class TestWebhookStored:
    """Messages that pass the allow-list."""

    def test_structured_message_stored(self, client, urgent_body):
        response = post_signed(client, urgent_body)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "stored"
        assert "reason" not in data
        record = data["record"]
        assert record["priority"] == "URGENT"
        assert record["title"] == "Disk low"
        assert record["body"] == "5GB left"
        assert record["source_label"] == "Server"
        assert record["origin_identifier"] == "+40712345678"
        assert record["is_read"] is False

    def test_stored_record_is_listed(self, client, urgent_body):
        record_id = post_signed(client, urgent_body).json()["record"]["id"]

        response = client.get("/records")

        assert [r["id"] for r in response.json()["data"]] == [record_id]

    def test_plain_message_defaults(self, client):
        body = json.dumps({"from": "+40712345678", "text": "Hello there\nsecond line"})

        record = post_signed(client, body).json()["record"]

        assert record["source_label"] == "SMS"
        assert record["priority"] == "NORMAL"
        assert record["title"] == "Hello there"
        assert record["body"] == "second line"

    def test_source_hint_used_for_plain_text(self, client):
        body = json.dumps({"from": "+1", "text": "ping", "source": "Pager"})

        assert post_signed(client, body).json()["record"]["source_label"] == "Pager"

    def test_missing_from_is_allowed_when_list_empty(self, client):
        body = json.dumps({"text": "no sender"})

        response = post_signed(client, body)

        assert response.status_code == 200
        assert response.json()["status"] == "stored"

    def test_response_has_request_id(self, client, urgent_body):
        assert "x-request-id" in post_signed(client, urgent_body).headers


class TestWebhookAllowList:
    """Sender filtering."""

    def test_unlisted_sender_dropped(self, client, urgent_body):
        client.post("/allowlist", json={"number": "+40700000000"})

        response = post_signed(client, urgent_body)

        assert response.status_code == 200
        assert response.json() == {"status": "dropped", "reason": "origin not allowed"}
        assert client.get("/records").json()["total"] == 0

    def test_listed_sender_stored(self, client, urgent_body):
        client.post("/allowlist", json={"number": "+40 (712) 345-678"})

        response = post_signed(client, urgent_body)

        assert response.json()["status"] == "stored"


class TestWebhookInvalidSignature:
    """Missing or wrong signatures."""

    def test_missing_signature_header(self, client, urgent_body):
        response = client.post(
            "/webhook",
            content=urgent_body,
            headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 401
        assert response.json() == {"detail": "invalid signature"}

    def test_invalid_signature(self, client, urgent_body):
        response = client.post(
            "/webhook",
            content=urgent_body,
            headers={
                "Content-Type": "application/json",
                "X-Signature": "invalid_signature_123"
            }
        )

        assert response.status_code == 401

    def test_signature_with_different_secret(self, client, urgent_body):
        response = post_signed(client, urgent_body, secret="wrong_secret")

        assert response.status_code == 401
        assert client.get("/records").json()["total"] == 0


class TestWebhookValidationErrors:
    """Bodies that fail parsing or schema validation (422)."""

    def test_invalid_json(self, client):
        assert post_signed(client, "not valid json").status_code == 422

    def test_missing_text(self, client):
        assert post_signed(client, json.dumps({"from": "+1"})).status_code == 422

    def test_text_too_long(self, client):
        body = json.dumps({"from": "+1", "text": "x" * 4097})

        assert post_signed(client, body).status_code == 422

    def test_empty_source(self, client):
        body = json.dumps({"from": "+1", "text": "hi", "source": ""})

        assert post_signed(client, body).status_code == 422

    def test_non_object_body(self, client):
        assert post_signed(client, "[1, 2]").status_code == 422


class TestHealth:

    def test_live(self, client):
        assert client.get("/health/live").json() == {"status": "ok", "reason": None}

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"


class TestMetrics:

    def test_ingest_outcomes_exposed(self, client, urgent_body):
        post_signed(client, urgent_body)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'ingest_requests_total{result="stored"}' in response.text
