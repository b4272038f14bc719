import logging
from collections.abc import AsyncIterator
from pathlib import Path

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from score_relay.adapter.gradio import GradioClient
from score_relay.config import get_allowed_image_types, get_cors_origins, settings
from score_relay.errors import (
    INTERNAL_ERROR,
    INVALID_TYPE,
    NO_IMAGE,
    InvalidImageError,
    RelayError,
    ResultParseError,
    UpstreamError,
)
from score_relay.observability import (
    RequestContextMiddleware,
    configure_logging,
    metrics_registry,
)
from score_relay.relay import run_prediction
from score_relay.schemas import ErrorResponse, HealthResponse, PredictionResponse, UploadedImage
from score_relay.validation import matches_signature, validate_image

configure_logging()
logger = logging.getLogger("score_relay.api")

ROOT_DIR = Path(__file__).resolve().parent.parent
FRONTEND_DIR = ROOT_DIR / "frontend"
STATIC_DIR = FRONTEND_DIR / "static"

app = FastAPI(title="Score Relay", version="0.1.0")
app.add_middleware(RequestContextMiddleware)
if get_cors_origins():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.exception_handler(RelayError)
async def relay_error_handler(_: Request, exc: RelayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    if any(tuple(error.get("loc", ()))[-1:] == ("image",) for error in exc.errors()):
        message = NO_IMAGE
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def get_inference_client() -> AsyncIterator[GradioClient]:
    async with GradioClient(
        settings.inference_base_url,
        api_name=settings.inference_api_name,
        timeout_s=settings.upstream_timeout_s,
    ) as client:
        yield client


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok", inference_base_url=settings.inference_base_url)


@app.get("/metrics", include_in_schema=False)
def metrics() -> PlainTextResponse:
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Not Found")
    return PlainTextResponse(metrics_registry.render_prometheus(), media_type="text/plain; version=0.0.4")


@app.get("/", include_in_schema=False)
def index_page() -> FileResponse:
    return FileResponse(FRONTEND_DIR / "index.html")


@app.get("/about", include_in_schema=False)
def about_page() -> FileResponse:
    return FileResponse(FRONTEND_DIR / "about.html")


@app.post(
    "/api/predict",
    response_model=PredictionResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def predict(
    image: UploadFile | None = File(default=None),
    client: GradioClient = Depends(get_inference_client),
) -> PredictionResponse:
    try:
        uploaded = await _read_upload(image)
        prediction = await run_prediction(uploaded, client)
    except RelayError as exc:
        metrics_registry.record_prediction(_outcome(exc))
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("prediction_failed")
        metrics_registry.record_prediction("internal_error")
        raise RelayError(INTERNAL_ERROR) from exc

    metrics_registry.record_prediction("ok")
    return PredictionResponse(prediction=prediction)


async def _read_upload(image: UploadFile | None) -> UploadedImage:
    if image is None:
        raise InvalidImageError(NO_IMAGE)

    content = await image.read()
    size = image.size if image.size is not None else len(content)
    validate_image(image.content_type, size, get_allowed_image_types(), settings.max_image_bytes)
    if settings.sniff_image_signature and not matches_signature(image.content_type, content):
        raise InvalidImageError(INVALID_TYPE)

    return UploadedImage(
        content=content,
        content_type=image.content_type,
        size=size,
        filename=image.filename or "image",
    )


def _outcome(exc: RelayError) -> str:
    if isinstance(exc, InvalidImageError):
        return "invalid_image"
    if isinstance(exc, UpstreamError):
        return "upstream_error"
    if isinstance(exc, ResultParseError):
        return "parse_error"
    return "internal_error"
