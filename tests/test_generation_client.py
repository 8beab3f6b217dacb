"""Tests for the generation service adapter."""

from unittest.mock import Mock

import pytest
import requests

from core.exceptions import ProcessingError
from integrations.generation_client import GenerationClient


def _response(status_code=200, json_body=None, text=""):
    resp = Mock(spec=requests.Response)
    resp.status_code = status_code
    resp.text = text
    if isinstance(json_body, Exception):
        resp.json.side_effect = json_body
    else:
        resp.json.return_value = json_body
    return resp


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    return GenerationClient(
        base_url="https://gen.test/v1/generate",
        api_key="secret",
        timeout=30,
        session=session,
    )


def test_success_returns_result(client, session):
    session.post.return_value = _response(json_body={"resultRef": "results/J1.png", "durationMs": 4200})

    result = client.process("uploads/a.jpg", "beach")

    assert result.result_ref == "results/J1.png"
    assert result.processing_duration_ms == 4200
    _, kwargs = session.post.call_args
    assert kwargs["json"] == {"sourceImageRef": "uploads/a.jpg", "prompt": "beach"}
    assert kwargs["timeout"] == 30
    assert kwargs["headers"]["Authorization"] == "Bearer secret"


def test_missing_duration_uses_measured_time(client, session):
    session.post.return_value = _response(json_body={"resultRef": "results/J1.png"})

    result = client.process("uploads/a.jpg", "beach")

    assert result.processing_duration_ms >= 0


def test_timeout_is_transient(client, session):
    session.post.side_effect = requests.Timeout("read timed out")

    with pytest.raises(ProcessingError) as exc_info:
        client.process("uploads/a.jpg", "beach")

    assert exc_info.value.kind == ProcessingError.TRANSIENT
    assert "timed out" in str(exc_info.value)


def test_connection_error_hides_transport_details(client, session):
    session.post.side_effect = requests.ConnectionError("Max retries exceeded with url: 10.0.0.7:443")

    with pytest.raises(ProcessingError) as exc_info:
        client.process("uploads/a.jpg", "beach")

    assert "10.0.0.7" not in str(exc_info.value)
    assert not exc_info.value.is_permanent


@pytest.mark.parametrize("status_code", [500, 503, 429])
def test_server_errors_and_throttling_are_transient(client, session, status_code):
    session.post.return_value = _response(status_code=status_code, text="upstream failure")

    with pytest.raises(ProcessingError) as exc_info:
        client.process("uploads/a.jpg", "beach")

    assert exc_info.value.kind == ProcessingError.TRANSIENT
    assert exc_info.value.status_code == status_code


def test_rejected_input_is_permanent(client, session):
    session.post.return_value = _response(status_code=422, text="prompt violates policy")

    with pytest.raises(ProcessingError) as exc_info:
        client.process("uploads/a.jpg", "beach")

    assert exc_info.value.is_permanent


def test_success_without_result_ref_is_an_error(client, session):
    session.post.return_value = _response(json_body={"durationMs": 10})

    with pytest.raises(ProcessingError):
        client.process("uploads/a.jpg", "beach")


def test_non_json_body_is_an_error(client, session):
    session.post.return_value = _response(json_body=ValueError("no json"), text="<html>")

    with pytest.raises(ProcessingError):
        client.process("uploads/a.jpg", "beach")
