from unittest.mock import patch

import pytest

from conftest import execution_ack, make_workflow_response
from support.job_ids import generate_job_id


@pytest.fixture
def job_id(client):
    with patch("requests.post", return_value=make_workflow_response(json_body=execution_ack())):
        response = client.post("/v1/jobs", files={"file": ("report.pdf", b"%PDF", "application/pdf")})
    return response.json()["jobId"]


def post_callback(client, body, headers=None):
    return client.post("/v1/callbacks/workflow", json=body, headers=headers or {})


def test_done_callback_with_result_ref(client, job_id, callback_headers):
    response = post_callback(client, {"jobId": job_id, "status": "done", "resultRef": "R1"}, callback_headers)

    assert response.status_code == 200
    assert response.json() == {"jobId": job_id, "status": "done", "applied": True}
    assert client.get(f"/v1/jobs/{job_id}/status").json()["status"] == "done"


def test_replayed_callback_is_acknowledged_but_not_applied(client, job_id, callback_headers):
    post_callback(client, {"jobId": job_id, "status": "done", "resultRef": "R1"}, callback_headers)
    replay = post_callback(client, {"jobId": job_id, "status": "error", "error": "late"}, callback_headers)

    assert replay.status_code == 200
    assert replay.json() == {"jobId": job_id, "status": "done", "applied": False}
    status_body = client.get(f"/v1/jobs/{job_id}/status").json()
    assert status_body["status"] == "done"
    assert "error" not in status_body


@pytest.mark.parametrize("headers", [{}, {"X-Callback-Secret": "wrong"}])
def test_callback_without_valid_secret(client, job_id, headers):
    response = post_callback(client, {"jobId": job_id, "status": "done", "resultRef": "R1"}, headers)

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid callback secret", "code": "INVALID_CALLBACK_SECRET"}
    assert client.get(f"/v1/jobs/{job_id}/status").json()["status"] == "pending"


def test_secret_is_checked_before_payload(client):
    response = client.post(
        "/v1/callbacks/workflow", content=b"not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 401


def test_callback_for_unknown_job(client, callback_headers):
    unknown = generate_job_id()
    response = post_callback(client, {"jobId": unknown, "status": "done", "resultRef": "R1"}, callback_headers)

    assert response.status_code == 404
    assert response.json()["code"] == "JOB_NOT_FOUND"
    assert client.get(f"/v1/jobs/{unknown}/status").status_code == 404


def test_callback_with_malformed_job_id(client, callback_headers):
    response = post_callback(client, {"jobId": "../etc", "status": "done", "resultRef": "R1"}, callback_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_JOB_ID"


@pytest.mark.parametrize(
    "fields",
    [
        {"status": "finished", "resultRef": "R1"},
        {"status": "done"},
        {"status": "error"},
        {"status": "error", "error": "   "},
    ],
)
def test_callback_with_invalid_payload(client, job_id, callback_headers, fields):
    response = post_callback(client, {"jobId": job_id, **fields}, callback_headers)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_CALLBACK_PAYLOAD"
    assert client.get(f"/v1/jobs/{job_id}/status").json()["status"] == "pending"


@pytest.mark.parametrize("body", [{"status": "done", "resultRef": "R1"}, ["not", "an", "object"]])
def test_callback_without_job_id(client, callback_headers, body):
    response = post_callback(client, body, callback_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_CALLBACK_PAYLOAD"


def test_callback_with_non_json_body(client, callback_headers):
    response = client.post(
        "/v1/callbacks/workflow",
        content=b"{broken",
        headers={**callback_headers, "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_CALLBACK_PAYLOAD"


def test_error_callback_with_reason(client, job_id, callback_headers):
    response = post_callback(
        client, {"jobId": job_id, "status": "error", "error": "OCR engine crashed"}, callback_headers
    )

    assert response.json()["applied"] is True
    status_body = client.get(f"/v1/jobs/{job_id}/status").json()
    assert status_body["status"] == "error"
    assert status_body["error"] == "OCR engine crashed"
    assert status_body["ready"] is False
