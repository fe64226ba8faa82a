"""Tests for the scheduler service."""
from unittest.mock import Mock, patch

import requests
from fastapi.testclient import TestClient
from tenacity import wait_none


def test_scheduler_imports():
    from services.scheduler.src.main import app, daily_job

    assert app is not None
    assert callable(daily_job)


def test_health_endpoint():
    from services.scheduler.src.main import app

    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@patch("requests.post")
def test_trigger_cleanup_posts_to_engagement(mock_post):
    from services.scheduler.src.main import ENGAGEMENT_URL, trigger_cleanup

    mock_post.return_value.json.return_value = {"removed": 3}
    mock_post.return_value.raise_for_status.return_value = None

    assert trigger_cleanup() == {"removed": 3}
    mock_post.assert_called_once()
    assert mock_post.call_args.args[0] == f"{ENGAGEMENT_URL}/maintenance/cleanup"


@patch("requests.post")
def test_daily_job_gives_up_after_retries(mock_post):
    from services.scheduler.src import main

    mock_post.side_effect = requests.exceptions.ConnectionError("down")
    with patch.object(main.trigger_cleanup.retry, "wait", wait_none()):
        main.daily_job()

    assert mock_post.call_count == main.CLEANUP_MAX_ATTEMPTS


@patch("services.scheduler.src.main.trigger_cleanup")
def test_daily_job_runs_cleanup(mock_trigger):
    from services.scheduler.src.main import daily_job

    mock_trigger.return_value = {"removed": 0}
    daily_job()
    mock_trigger.assert_called_once()


def test_readiness_reports_engagement_dependency():
    from services.scheduler.src import main

    failing = Mock(side_effect=requests.exceptions.ConnectionError("down"))
    with patch("httpx.Client.get", failing):
        data = main.health_checker.readiness()

    assert data["status"] == "not_ready"
    assert data["critical_dependencies"] == {"engagement": "unhealthy"}
