"""
FastAPI app entrypoint.

Pulse ingestion (events, batch, soft delete), machine counters and read-only stats.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from coinpulse.api.routes import events, machines, stats
from coinpulse.config import settings
from coinpulse.core.errors import STATUS_BAD_REQUEST, ValidationError
from coinpulse.db.session import create_all_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.auto_create_tables:
        create_all_tables()
        logger.info("Tables created from models (AUTO_CREATE_TABLES)")
    logger.info("Backend ready (business time zone %s)", settings.business_timezone)
    yield


app = FastAPI(title="Coin Pulse", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS env (comma-separated) for the dashboard
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.cors_origins:
    _cors_origins.extend(o.strip() for o in settings.cors_origins.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def malformed_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query params answer 400 with the same shape as domain errors."""
    problems = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
        for err in exc.errors()
    ]
    error = ValidationError("Invalid request", problems=problems)
    return JSONResponse(status_code=STATUS_BAD_REQUEST, content={"detail": error.to_dict()})


app.include_router(events.router, tags=["events"])
app.include_router(stats.router, tags=["stats"])
app.include_router(machines.router, tags=["machines"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "Coin Pulse API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
