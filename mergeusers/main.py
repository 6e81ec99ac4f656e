"""
FastAPI app entrypoint: merge users and inspect merge logs.
"""
import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

# Load .env from the project root before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from mergeusers.api.routes import merge  # noqa: E402

logger = logging.getLogger(__name__)

app = FastAPI(title="Merge Users", version="0.1.0")

app.include_router(merge.router, tags=["merge"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "Merge Users API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
