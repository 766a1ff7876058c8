from __future__ import annotations

import logging
import traceback
from typing import Any

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from process_analyzer.config import load_settings
from process_analyzer.ingestion import UploadedFile, detect_media_type, validate_batch
from process_analyzer.llm_provider import GenerationProviderError, build_generation_client
from process_analyzer.pipeline import AllFilesFailedError, IncomingFile, optimize_process, process_documents
from process_analyzer.schema_models import OptimizeProcessRequest

logger = logging.getLogger(__name__)

app = FastAPI(title="Process Analyzer API")


@app.middleware("http")
async def api_prefix_alias(request, call_next):
    """Accept both `/path` and `/api/path` for frontend compatibility."""
    if request.scope.get("path", "").startswith("/api/"):
        request.scope["path"] = request.scope["path"][4:]
    return await call_next(request)


app.add_middleware(
    CORSMiddleware,
    allow_origins=load_settings().cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, error: str, message: str, exc: BaseException | None = None, **extra: Any) -> JSONResponse:
    content: dict[str, Any] = {"error": error, "message": message, **extra}
    if exc is not None and load_settings().is_development:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status_code, content=content)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.post("/process-documents")
async def process_documents_endpoint(files: list[UploadFile] | None = File(None)):
    settings = load_settings()

    incoming: list[IncomingFile] = []
    for upload in files or []:
        file_name = upload.filename or "unknown"
        incoming.append(
            IncomingFile(
                file_name=file_name,
                media_type=detect_media_type(file_name, upload.content_type),
                content=await upload.read(),
            )
        )

    validation = validate_batch(
        [UploadedFile(item.file_name, item.media_type, len(item.content)) for item in incoming],
        max_files=settings.max_files,
        max_file_bytes=settings.max_file_bytes,
    )
    if validation.status == "error":
        return _error_response(400, "Invalid upload", validation.message, warnings=validation.warnings)
    if validation.status == "warning":
        return _error_response(415, "Unsupported file type", validation.message, warnings=validation.warnings)

    logger.info("Received %d files for processing", len(incoming))
    try:
        client = build_generation_client(settings)
        result = await run_in_threadpool(process_documents, incoming, client, settings)
    except AllFilesFailedError as exc:
        return _error_response(400, str(exc), "Every uploaded file failed to parse.", details=exc.details)
    except (GenerationProviderError, ValueError) as exc:
        logger.error("Error processing documents: %s", exc, exc_info=True)
        return _error_response(500, "Failed to process documents", str(exc), exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error processing documents")
        return _error_response(500, "Failed to process documents", "An unexpected error occurred.", exc)

    return result.to_dict()


@app.post("/optimize-process")
async def optimize_process_endpoint(request: Request):
    settings = load_settings()

    try:
        payload = await request.json()
    except ValueError as exc:
        return _error_response(400, "Missing required data", f"Request body must be JSON: {exc}")

    try:
        body = OptimizeProcessRequest.model_validate(payload)
    except ValidationError as exc:
        return _error_response(
            400,
            "Missing required data",
            "originalMetrics and workflowDiagram are required.",
            details=exc.errors(include_url=False, include_context=False, include_input=False),
        )

    try:
        client = build_generation_client(settings)
        optimized = await run_in_threadpool(
            optimize_process,
            body.original_metrics.to_metrics(),
            body.workflow_diagram.to_description(),
            client,
            settings,
        )
    except (GenerationProviderError, ValueError) as exc:
        logger.error("Error in optimize-process: %s", exc, exc_info=True)
        return _error_response(500, "Failed to optimize process", str(exc), exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error in optimize-process")
        return _error_response(500, "Failed to optimize process", "An unexpected error occurred.", exc)

    return optimized.to_dict()
