# tests/test_api.py
import pytest
from fastapi.testclient import TestClient

from conftest import PAGE_1, PAGE_2, ScriptedModel, answer_json, build_pdf
from controller.controller_dependencies import (
    get_document_service,
    get_qa_service,
    rate_limiter,
)
from main import app
from repository.session_repository import SessionRepository
from service.document_service import DocumentService
from service.qa_service import QaService
from util.errors import ModelCallFailed

SIGNED = {"page": 1, "quote": "Signed: Dr. Amelia Hart", "note": "signature"}
PDF = build_pdf([["Discharge summary.", "Signed: Dr. Amelia Hart"], ["Sleep diary"]])


@pytest.fixture
def model():
    return ScriptedModel(answer_json([SIGNED]))


@pytest.fixture
def client(model):
    # No context manager: the Redis-backed lifespan is not started.
    qa = QaService(lambda level: model)
    documents = DocumentService(SessionRepository(store={}), qa)
    app.dependency_overrides[rate_limiter] = lambda: None
    app.dependency_overrides[get_qa_service] = lambda: qa
    app.dependency_overrides[get_document_service] = lambda: documents
    yield TestClient(app)
    app.dependency_overrides.clear()


def _ask_body(**overrides):
    body = {
        "question": "Who signed the discharge?",
        "pages": [{"page": 1, "text": PAGE_1}, {"page": 2, "text": PAGE_2}],
    }
    body.update(overrides)
    return body


def _upload(client, data=PDF, name="summary.pdf", mime="application/pdf"):
    return client.post("/api/v1/documents", files={"file": (name, data, mime)})


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": True}


def test_ask_returns_grounded_answer(client, model):
    res = client.post("/api/v1/ask", json=_ask_body(maxEvidence=50, reasoningLevel="bogus"))
    assert res.status_code == 200
    body = res.json()
    assert body["evidence_for"] == [SIGNED]
    assert body["evidence_against"] == []
    assert body["confidence"] == "high"
    assert model.calls[0][0].max_evidence == 8


@pytest.mark.parametrize(
    "body,field",
    [
        (_ask_body(question=""), "question"),
        (_ask_body(question="   "), "question"),
        (_ask_body(pages=[]), "pages"),
        (_ask_body(pages=[{"page": 1, "text": "a"}, {"page": 1, "text": "b"}]), "pages"),
    ],
)
def test_ask_rejects_invalid_input_with_400(client, model, body, field):
    res = client.post("/api/v1/ask", json=body)
    assert res.status_code == 400
    assert res.json() == {"error": f"Missing or invalid '{field}'"}
    assert model.calls == []


def test_ask_failure_is_generic_502(client, model):
    model._replies = [ModelCallFailed("upstream 529 overloaded")]
    res = client.post("/api/v1/ask", json=_ask_body())
    assert res.status_code == 502
    assert res.json() == {
        "error": "Unable to analyze this document right now. Please try again."
    }
    assert len(model.calls) == 2


def test_upload_then_ask_highlight_and_view(client):
    res = _upload(client)
    assert res.status_code == 201
    doc = res.json()
    assert doc["version"] == 1 and doc["pageCount"] == 2
    assert "Signed: Dr. Amelia Hart" in doc["pages"][0]["text"]
    sid = doc["sessionId"]

    res = client.post(f"/api/v1/documents/{sid}/ask", json={"question": "Who signed?"})
    assert res.status_code == 200
    evidence = res.json()["evidence_for"][0]

    res = client.post(
        f"/api/v1/documents/{sid}/highlight",
        json={"page": evidence["page"], "quote": evidence["quote"]},
    )
    assert res.status_code == 200
    hl = res.json()
    assert hl["status"] == "ready"
    assert hl["quote"] == evidence["quote"]
    assert hl["region"]["pageNumber"] == 1

    viewer = client.get(f"/api/v1/documents/{sid}/viewer").json()
    assert viewer["currentPage"] == 1
    assert len(viewer["highlights"]) == 1

    assert client.delete(f"/api/v1/documents/{sid}/highlights").status_code == 204
    assert client.get(f"/api/v1/documents/{sid}/viewer").json()["highlights"] == []


def test_replace_document_bumps_version(client):
    sid = _upload(client).json()["sessionId"]
    res = client.put(
        f"/api/v1/documents/{sid}",
        files={"file": ("other.pdf", build_pdf([["Another file"]]), "application/pdf")},
    )
    assert res.status_code == 200
    assert res.json()["version"] == 2
    assert res.json()["pageCount"] == 1


def test_upload_rejects_non_pdf_and_garbage(client):
    res = _upload(client, data=b"hello", name="notes.txt", mime="text/plain")
    assert res.status_code == 400
    assert res.json() == {"error": "Please upload a PDF file."}

    res = _upload(client, data=b"this is not a pdf")
    assert res.status_code == 422


def test_unknown_session_is_404(client):
    res = client.post("/api/v1/documents/nope/ask", json={"question": "q"})
    assert res.status_code == 404
    assert client.delete("/api/v1/documents/nope").status_code == 404


def test_closed_session_is_gone(client):
    sid = _upload(client).json()["sessionId"]
    assert client.delete(f"/api/v1/documents/{sid}").status_code == 204
    assert client.get(f"/api/v1/documents/{sid}/viewer").status_code == 404


def test_superseded_answer_is_204(client, monkeypatch):
    sid = _upload(client).json()["sessionId"]

    async def stale(self, session_id, payload):
        return None

    monkeypatch.setattr(DocumentService, "ask", stale)
    res = client.post(f"/api/v1/documents/{sid}/ask", json={"question": "q"})
    assert res.status_code == 204
    assert res.content == b""


def test_idle_session_expires_and_answers_404(model):
    clock = {"now": 0.0}
    qa = QaService(lambda level: model)
    repo = SessionRepository(store={}, ttl_seconds=60, clock=lambda: clock["now"])
    documents = DocumentService(repo, qa)
    app.dependency_overrides[rate_limiter] = lambda: None
    app.dependency_overrides[get_document_service] = lambda: documents
    try:
        client = TestClient(app)
        sid = _upload(client).json()["sessionId"]
        clock["now"] = 30.0
        assert client.get(f"/api/v1/documents/{sid}/viewer").status_code == 200
        clock["now"] = 120.0
        res = client.post(f"/api/v1/documents/{sid}/ask", json={"question": "q"})
        assert res.status_code == 404
        assert res.json() == {"error": "Unknown or expired session"}
    finally:
        app.dependency_overrides.clear()


def test_error_shape_is_documented(client):
    paths = client.get("/openapi.json").json()["paths"]
    ask_502 = paths["/api/v1/ask"]["post"]["responses"]["502"]
    assert ask_502["content"]["application/json"]["schema"] == {
        "$ref": "#/components/schemas/ErrorResponse"
    }
    upload = paths["/api/v1/documents"]["post"]["responses"]
    assert "413" in upload and "422" in upload


def test_oversized_upload_is_413(client, monkeypatch):
    from config.settings import settings

    monkeypatch.setattr(settings, "MAX_FILE_MB", 0)
    res = _upload(client)
    assert res.status_code == 413
    assert res.json()["error"].startswith("File is too large.")
