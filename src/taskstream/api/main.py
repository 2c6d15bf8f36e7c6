from __future__ import annotations

from datetime import UTC, datetime
from dotenv import load_dotenv
import logging
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.chat import router as chat_router
from .routers.forms import router as forms_router
from .routers.extraction import router as extraction_router
from ..config import load_settings
from ..observability.metrics import metrics_middleware_factory

load_dotenv()  # Load environment variables from .env if present (TASKSTREAM_STREAM_URL, REDIS_URL, etc.)

app = FastAPI(title="TaskStream Runtime API", version="0.1.0")

logging.basicConfig(level=logging.INFO)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

app.include_router(chat_router)
app.include_router(forms_router)
app.include_router(extraction_router)

# Same routers under /api for clients that proxy through a prefix
app.include_router(chat_router, prefix="/api")
app.include_router(forms_router, prefix="/api")
app.include_router(extraction_router, prefix="/api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {"name": "TaskStream Runtime API", "version": "0.1.0"}


@app.get("/health")
def health():
    settings = load_settings()
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "history": "in-memory",
            "side_effects": "redis" if settings.redis_url else "buffer",
        },
    }


@app.get("/metrics")
def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
