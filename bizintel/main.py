from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from bizintel import config, service
from bizintel.cache import QueryCache, create_query_cache_from_env
from bizintel.errors import BizIntelError, InvalidInputError, NotFoundError, RateLimitedError, UpstreamFailureError
from bizintel.llm_client import CompletionClient, create_resilient_client_from_env
from bizintel.logging_setup import configure_logging
from bizintel.models import Dataset, utc_now_iso
from bizintel.rate_limit import RateLimitConfig, SlidingWindowRateLimiter
from bizintel.store import DatasetStore, InMemoryDatasetStore

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".csv", ".txt"}
SAMPLE_ROWS_IN_DETAIL = 10

router = APIRouter(tags=["bizintel"])

store: DatasetStore = InMemoryDatasetStore(max_items=config.DATASET_STORE_MAX_ITEMS)
query_cache: QueryCache = create_query_cache_from_env()
rate_limiter = SlidingWindowRateLimiter(
    RateLimitConfig(window_seconds=config.RATE_LIMIT_WINDOW_SECONDS, max_requests=config.RATE_LIMIT_MAX_REQUESTS)
)
_completion_client: CompletionClient | None = None


class QueryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str | None = None
    query: str | None = None
    dataset_id: str | None = Field(default=None, alias="datasetId")
    prior_turns: list[Any] | None = Field(default=None, alias="priorTurns")
    context: list[Any] | None = None


def _get_completion_client() -> CompletionClient:
    global _completion_client
    if _completion_client is None:
        try:
            _completion_client = create_resilient_client_from_env()
        except RuntimeError as exc:
            raise UpstreamFailureError(f"AI model not initialized: {exc}", retryable=False) from exc
    return _completion_client


def _require_dataset(dataset_id: str) -> Dataset:
    dataset = store.get(dataset_id)
    if dataset is None:
        raise NotFoundError(f"Dataset '{dataset_id}' not found.")
    return dataset


def _client_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _ingested_payload(dataset: Dataset, message: str) -> dict[str, Any]:
    return {
        "success": True,
        "datasetId": dataset.id,
        "summary": dataset.summary.to_dict(),
        "sampleData": dataset.head(3),
        "message": message,
    }


async def _handle_app_error(request: Request, exc: BizIntelError) -> JSONResponse:
    payload = exc.to_payload()
    payload["timestamp"] = utc_now_iso()
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimitedError) else None
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=payload, headers=headers)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = InvalidInputError("Invalid request payload.")
    payload = error.to_payload()
    payload["details"] = jsonable_errors(exc)
    return JSONResponse(status_code=error.status_code, content=payload)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "Unexpected server error.", "retryable": False},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [{"loc": list(err.get("loc", ())), "msg": str(err.get("msg", ""))} for err in exc.errors()]


@router.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "healthy", "timestamp": utc_now_iso()}


@router.post("/datasets")
async def upload_dataset(
    file: UploadFile | None = File(None),
    dataset_name: str | None = Form(None, alias="datasetName"),
    description: str | None = Form(None),
) -> dict[str, Any]:
    if file is None or not file.filename:
        raise InvalidInputError("No file uploaded.")
    suffix = Path(file.filename).suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise InvalidInputError("Only CSV files are supported.")

    content = await file.read()
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise InvalidInputError(f"File exceeds the {config.MAX_UPLOAD_BYTES} byte upload limit.")

    dataset = service.ingest_dataset(content, name=dataset_name or file.filename, description=description or "")
    store.put(dataset)
    return _ingested_payload(dataset, f"Successfully processed {dataset.row_count} records")


@router.get("/datasets")
def list_datasets() -> dict[str, Any]:
    return {"datasets": [dataset.listing() for dataset in store.list()]}


@router.get("/datasets/{dataset_id}")
def get_dataset(dataset_id: str) -> dict[str, Any]:
    dataset = _require_dataset(dataset_id)
    return {
        "id": dataset.id,
        "name": dataset.name,
        "description": dataset.description,
        "uploadedAt": dataset.uploaded_at,
        "summary": dataset.summary.to_dict(),
        "sampleData": dataset.head(SAMPLE_ROWS_IN_DETAIL),
    }


@router.post("/query")
def query_dataset(body: QueryRequest, request: Request) -> dict[str, Any]:
    rate_limiter.check(_client_id(request))

    question = body.question or body.query
    if not question or not question.strip() or not body.dataset_id:
        raise InvalidInputError("Question/query and datasetId are required.")

    dataset = _require_dataset(body.dataset_id)

    cached = query_cache.get(dataset.id, question)
    if cached is not None:
        logger.info("Returning cached answer for dataset %s", dataset.id)
        return {**cached.answer, "cached": True}

    prior_turns = body.prior_turns if body.prior_turns is not None else body.context
    result = service.answer_question(dataset, question, _get_completion_client(), prior_turns)
    query_cache.put(dataset.id, question, result)
    return {**result, "cached": False}


@router.get("/demo")
def list_demo_datasets() -> dict[str, Any]:
    return {
        "demos": [
            {"key": demo.key, "name": demo.name, "description": demo.description}
            for demo in service.DEMO_DATASETS.values()
        ]
    }


@router.post("/demo/{key}")
def load_demo(key: str) -> dict[str, Any]:
    dataset = service.load_demo_dataset(key)
    store.put(dataset)
    return _ingested_payload(dataset, f"Demo {dataset.name} loaded: {dataset.row_count} records")


@router.get("/demo/{key}/download")
def download_demo(key: str) -> FileResponse:
    path = service.demo_dataset_path(key)
    if not path.exists():
        raise NotFoundError(f"Demo dataset file for '{key}' is missing.")
    return FileResponse(path, media_type="text/csv", filename=f"{key}-sample.csv")


def build_app() -> FastAPI:
    configure_logging(config.LOG_LEVEL, config.LOG_FORMAT)
    api_app = FastAPI(
        title="AI Business Intelligence Backend",
        description="CSV ingestion, schema inference and LLM-backed business analysis.",
        version="1.0.0",
    )
    api_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    api_app.add_exception_handler(BizIntelError, _handle_app_error)
    api_app.add_exception_handler(RequestValidationError, _handle_validation_error)
    api_app.add_exception_handler(Exception, _handle_unexpected_error)

    api_app.include_router(router)
    return api_app


app = build_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
