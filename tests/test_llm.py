import httpx
import pytest

import config
import llm_routes


@pytest.fixture
def mock_mode(monkeypatch):
    monkeypatch.setattr(config, "LLM_MOCK_MODE", True)


@pytest.fixture
def ollama_mode(monkeypatch):
    monkeypatch.setattr(config, "LLM_MOCK_MODE", False)
    monkeypatch.setattr(config, "CUSTOM_LLM_URL", None)


def test_mock_completion():
    assert llm_routes.mock_completion("Python for") == " programming, data science, machine learning"
    assert llm_routes.mock_completion("underwater basket weaving") == llm_routes.DEFAULT_MOCK_RESPONSE


def test_complete_in_mock_mode(client, mock_mode):
    res = client.post("/api/llm/complete", json={"prompt": "react"})
    assert res.status_code == 200
    assert res.json() == {
        "success": True,
        "completion": " development, frontend, web applications",
        "prompt": "react",
        "model": "mock",
    }


def test_complete_requires_prompt(client, mock_mode):
    res = client.post("/api/llm/complete", json={"prompt": ""})
    assert res.status_code == 400
    assert res.json()["detail"] == "Prompt is required"


def test_complete_with_ollama(client, ollama_mode, monkeypatch):
    calls = []

    def fake_post(url, json, timeout):
        calls.append((url, json))
        return httpx.Response(200, json={"response": " basics  "}, request=httpx.Request("POST", url))

    monkeypatch.setattr(llm_routes.httpx, "post", fake_post)
    res = client.post("/api/llm/complete", json={"prompt": "guitar"})
    assert res.status_code == 200
    assert res.json()["completion"] == "basics"
    assert res.json()["model"] == config.OLLAMA_MODEL
    url, body = calls[0]
    assert url == f"{config.OLLAMA_URL}/api/generate"
    assert "Query: guitar" in body["prompt"]
    assert body["stream"] is False


def test_complete_with_custom_llm(client, monkeypatch):
    monkeypatch.setattr(config, "LLM_MOCK_MODE", False)
    monkeypatch.setattr(config, "CUSTOM_LLM_URL", "http://llm.internal/api/complete")
    monkeypatch.setattr(
        llm_routes.httpx, "post",
        lambda url, json, timeout: httpx.Response(200, json={"text": " for beginners"},
                                                  request=httpx.Request("POST", url)),
    )
    body = client.post("/api/llm/complete", json={"prompt": "chess"}).json()
    assert body["completion"] == " for beginners"
    assert body["model"] == "custom"


def test_upstream_failure_returns_500(client, ollama_mode, monkeypatch):
    def boom(*args, **kwargs):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(llm_routes.httpx, "post", boom)
    res = client.post("/api/llm/complete", json={"prompt": "guitar"})
    assert res.status_code == 500
    assert res.json() == {"detail": "Failed to generate completion", "error": "Failed to get completion from Ollama"}


def test_health_in_mock_mode(client, mock_mode):
    assert client.get("/api/llm/health").json()["mode"] == "mock"


def test_health_reports_unreachable_upstream(client, ollama_mode, monkeypatch):
    def boom(*args, **kwargs):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(llm_routes.httpx, "get", boom)
    res = client.get("/api/llm/health")
    assert res.status_code == 503
    assert res.json()["status"] == "unhealthy"
