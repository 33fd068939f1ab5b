import json
import logging

import pytest
import requests
from fastapi.testclient import TestClient

from main import app, init_app_state
from local_storages.in_memory_job_storage import InMemoryJobStorage
from local_storages.local_artifact_storage import LocalArtifactStorage
from support.constants import APP_NAME

CALLBACK_SECRET = "test-callback-secret"
WEBHOOK_URL = "http://workflow.test/webhook/convert"


# ENVIRONMENT FIXTURES ----------------------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def workflow_env(monkeypatch):
    """Configure the webhook URL and callback secret for every test."""
    monkeypatch.setenv("WORKFLOW_WEBHOOK_URL", WEBHOOK_URL)
    monkeypatch.setenv("CALLBACK_SECRET", CALLBACK_SECRET)
    yield


@pytest.fixture
def callback_headers():
    return {"X-Callback-Secret": CALLBACK_SECRET}


# APP FIXTURES ------------------------------------------------------------------------------------------------
@pytest.fixture
def artifact_storage(tmp_path):
    """Local artifact storage rooted in a per-test temporary directory."""
    return LocalArtifactStorage(str(tmp_path / "artifacts"))


@pytest.fixture
def job_store():
    return InMemoryJobStorage()


@pytest.fixture
def client(artifact_storage):
    """FastAPI test client bound to the application instance with fresh state."""
    # Indicate testing mode so middleware can relax behaviors (e.g., rate limits)
    app.state.testing = True
    init_app_state(app, artifact_storage=artifact_storage)
    with TestClient(app) as test_client:
        yield test_client


# WORKFLOW RESPONSES ------------------------------------------------------------------------------------------
def make_workflow_response(status_code=200, json_body=None, text=None, content_type="application/json"):
    """Build a real requests.Response as the workflow webhook would return it."""
    response = requests.Response()
    response.status_code = status_code
    response.url = WEBHOOK_URL
    response.encoding = "utf-8"
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
    else:
        response._content = (text or "").encode("utf-8")
    # Body is preloaded, so streaming reads replay it instead of touching a socket
    response._content_consumed = True
    if content_type:
        response.headers["Content-Type"] = content_type
    return response


def execution_ack(execution_id="E1", status="running"):
    return [
        {
            "executionId": execution_id,
            "status": status,
            "message": "Workflow was started",
            "webhookUrl": WEBHOOK_URL,
            "executionMode": "webhook",
        }
    ]


# Logging ----------------------------------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def setup_test_logging():
    """Setup test logging configuration for all tests."""
    logging.getLogger().handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(console_handler)

    # Reduce third-party logging noise
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


@pytest.fixture
def caplog(caplog):
    """Enhanced caplog fixture that works with our structured logging."""
    caplog.set_level(logging.DEBUG, logger=APP_NAME)
    return caplog
