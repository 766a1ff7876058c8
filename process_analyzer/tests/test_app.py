import pytest
from fastapi.testclient import TestClient

from process_analyzer import app as app_module
from process_analyzer.app import app
from process_analyzer.llm_provider import GenerationProviderError

DIAGRAM = "graph TD\nA[Start] --> B[Step 1: Submit (30 min)]\nB --> C[Step 2: Approve (1 hour)]\nC --> D[endNode]"


class StubClient:
    name = "openai"

    def __init__(self, error=None):
        self.error = error

    def generate(self, prompt, system_instructions=None, options=None):
        if self.error is not None:
            raise self.error
        if "workflow diagram" in system_instructions:
            return f"```mermaid\n{DIAGRAM}\n```"
        if "optimization" in system_instructions:
            return '{"summary": "Approve while submitting.", "totalSteps": 1, "totalTime": "1 hour"}'
        return "<table><tr><td>Step 1: Submit</td></tr></table>"


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("PROCESS_ENV", raising=False)
    monkeypatch.setattr(app_module, "build_generation_client", lambda settings: StubClient())
    return TestClient(app)


def test_health_endpoint(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_api_prefixed_health_route_supported(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_cors_middleware_is_installed():
    assert any(entry.cls.__name__ == "CORSMiddleware" for entry in app.user_middleware)


def test_process_documents_without_files_is_rejected(client):
    response = client.post("/process-documents")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid upload"
    assert response.json()["message"] == "No documents uploaded."


def test_process_documents_unsupported_type(client):
    response = client.post("/process-documents", files=[("files", ("photo.png", b"\x89PNG", "image/png"))])

    assert response.status_code == 415
    body = response.json()
    assert body["error"] == "Unsupported file type"
    assert "Unsupported file type 'image/png' for photo.png." in body["warnings"]


def test_process_documents_too_many_files(client, monkeypatch):
    monkeypatch.setenv("PROCESS_MAX_FILES", "1")
    files = [
        ("files", ("a.txt", b"alpha", "text/plain")),
        ("files", ("b.txt", b"beta", "text/plain")),
    ]

    response = client.post("/process-documents", files=files)

    assert response.status_code == 400
    assert "At most 1 files" in response.json()["message"]


def test_process_documents_success(client):
    response = client.post(
        "/api/process-documents",
        files=[("files", ("steps.csv", b"Step,Duration\nSubmit,30 min\nApprove,1 hour\n", "application/vnd.ms-excel"))],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["processedFiles"] == [{"fileName": "steps.csv", "parsed": True, "type": "csv"}]
    assert body["workflowDiagram"]["diagram"] == DIAGRAM
    assert body["processMetrics"]["totalSteps"] == 2
    assert body["provider"] == "openai"


def test_process_documents_all_files_failed(client, monkeypatch):
    from process_analyzer import pipeline
    from process_analyzer.records import failed_record

    monkeypatch.setattr(
        pipeline,
        "parse_document",
        lambda content, media_type, file_name: failed_record("text", "", "unreadable", file_name),
    )

    response = client.post("/process-documents", files=[("files", ("a.txt", b"alpha", "text/plain"))])

    assert response.status_code == 400
    assert response.json()["details"] == [{"fileName": "a.txt", "error": "unreadable"}]


def test_process_documents_provider_failure(client, monkeypatch):
    monkeypatch.setattr(
        app_module,
        "build_generation_client",
        lambda settings: StubClient(error=GenerationProviderError("openai", "quota exceeded")),
    )

    response = client.post("/process-documents", files=[("files", ("a.txt", b"alpha", "text/plain"))])

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to process documents"
    assert body["message"] == "quota exceeded"
    assert "stack" not in body


def test_optimize_process_success(client):
    payload = {
        "originalMetrics": {"totalSteps": 2, "totalTime": "1 hour 30 minutes", "stepTimes": []},
        "workflowDiagram": {"diagram": DIAGRAM, "type": "flow"},
    }

    response = client.post("/optimize-process", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == "Approve while submitting."
    assert body["metrics"]["totalSteps"] == 1
    assert body["timeSavingsPercent"] == 33
    assert len(body["suggestions"]) == 3
    assert body["provider"] == "openai"


def test_optimize_process_missing_data(client):
    response = client.post("/optimize-process", json={"originalMetrics": {"totalSteps": 3}})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Missing required data"
    assert any(error["loc"] == ["workflowDiagram"] for error in body["details"])


def test_optimize_process_rejects_non_json_body(client):
    response = client.post("/optimize-process", content=b"not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required data"


def test_optimize_process_failure_includes_stack_in_development(client, monkeypatch):
    monkeypatch.setenv("PROCESS_ENV", "development")
    monkeypatch.setattr(
        app_module,
        "build_generation_client",
        lambda settings: StubClient(error=GenerationProviderError("openai", "provider down")),
    )
    payload = {
        "originalMetrics": {"totalSteps": 1, "totalTime": "1 hour"},
        "workflowDiagram": {"diagram": DIAGRAM},
    }

    response = client.post("/optimize-process", json=payload)

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to optimize process"
    assert "GenerationProviderError" in body["stack"]


def test_unexpected_processing_error_is_structured(client, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(app_module, "process_documents", explode)

    response = client.post("/process-documents", files=[("files", ("a.txt", b"alpha", "text/plain"))])

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process documents", "message": "An unexpected error occurred."}


def test_unexpected_optimization_error_is_structured(client, monkeypatch):
    def explode(*args, **kwargs):
        raise KeyError("stepTimes")

    monkeypatch.setattr(app_module, "optimize_process", explode)
    payload = {"originalMetrics": {"totalSteps": 1}, "workflowDiagram": {"diagram": DIAGRAM}}

    response = client.post("/optimize-process", json=payload)

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to optimize process"
    assert body["message"] == "An unexpected error occurred."
