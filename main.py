"""Contract Monitor dashboard — HTTP API.

Serves the dashboard's read model and user actions over FastAPI so a
frontend (or curl) can drive the same DashboardRuntime the CLI uses.

Flow for a lifecycle action:
    POST /api/changes/{id}/resolve
        → look the record up in the runtime's feed (refreshing once if the
          id is not cached yet)
        → LifecycleController validates; InvalidTransition → 409
        → backend call; TransportFailure → 502
        → return the updated record; the caller re-fetches /api/overview

Run locally:
    uvicorn main:app --reload
"""

import logging
import logging.handlers
import pathlib

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from aggregation.aggregator import ChangeAggregator
from backend.base import TransportFailure
from core.runtime import DashboardRuntime
from core.settings import Settings, make_backend
from lifecycle.controller import InvalidTransition
from schemas.change import ChangeRecord

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_FILE = pathlib.Path(__file__).parent / "contract_monitor.log"
LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_file_handler = logging.handlers.RotatingFileHandler(
    LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8",
)
_file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

_root_logger = logging.getLogger()
_root_logger.setLevel(logging.INFO)
_root_logger.addHandler(_file_handler)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App + CORS
# ---------------------------------------------------------------------------

settings = Settings.from_env()

app = FastAPI(title="Contract Monitor Dashboard")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Runtime setup
# ---------------------------------------------------------------------------

runtime = DashboardRuntime(
    make_backend(settings),
    settings.services,
    aggregator=ChangeAggregator(
        per_service_limit=settings.per_service_limit,
        window=settings.feed_window,
        timeout_seconds=settings.timeout_seconds,
    ),
    actor=settings.actor,
)


def get_runtime() -> DashboardRuntime:
    """FastAPI dependency. Tests override it with a runtime of their own."""
    return runtime


# ---------------------------------------------------------------------------
# Request bodies (same field names as the contract monitor API)
# ---------------------------------------------------------------------------

class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AcknowledgeRequest(_Body):
    acknowledged_by: str | None = None


class ResolveRequest(_Body):
    resolved_by: str | None = None
    notes: str | None = None


class IgnoreRequest(_Body):
    ignored_by: str | None = None
    reason: str | None = None


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@app.exception_handler(InvalidTransition)
async def _invalid_transition(request: Request, exc: InvalidTransition):
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "changeId": exc.change_id,
            "status": exc.status.value,
            "action": exc.action.value,
        },
    )


@app.exception_handler(TransportFailure)
async def _transport_failure(request: Request, exc: TransportFailure):
    logger.error("Backend call %s failed: %s", exc.operation, exc)
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc), "operation": exc.operation},
    )


async def _lookup(rt: DashboardRuntime, change_id: str) -> ChangeRecord:
    """Return the cached record, refreshing once if it is not cached yet."""
    try:
        return rt.get_change(change_id)
    except KeyError:
        pass
    await rt.refresh()
    try:
        return rt.get_change(change_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0])) from None


def _change_payload(rt: DashboardRuntime, record: ChangeRecord) -> dict:
    return {
        "change": record.model_dump(mode="json", by_alias=True),
        "allowedActions": [a.value for a in rt.allowed_actions(record.id)],
    }


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Read model
# ---------------------------------------------------------------------------

@app.get("/api/overview")
async def overview(status: str = "ALL", rt: DashboardRuntime = Depends(get_runtime)):
    """Refresh everything and return the dashboard snapshot.

    Query params:
        status: "ALL" (default) or one of ACTIVE, ACKNOWLEDGED, RESOLVED,
            IGNORED. Anything else is a 400.
    """
    try:
        snapshot = await rt.refresh(status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return snapshot.model_dump(mode="json", by_alias=True)


@app.get("/api/changes/{change_id}/insights")
async def change_insights(change_id: str, rt: DashboardRuntime = Depends(get_runtime)):
    """Return the parsed insight documents of one change, keyed by field.

    Fields without text are omitted, so a change with no insights returns {}.
    """
    record = await _lookup(rt, change_id)
    return {
        field.value: document.model_dump(mode="json")
        for field, document in rt.insights(record.id).items()
    }


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------

@app.post("/api/changes/{change_id}/acknowledge")
async def acknowledge_change(
    change_id: str,
    body: AcknowledgeRequest | None = None,
    rt: DashboardRuntime = Depends(get_runtime),
):
    record = await _lookup(rt, change_id)
    updated = await rt.acknowledge(record.id, actor=body.acknowledged_by if body else None)
    return _change_payload(rt, updated)


@app.post("/api/changes/{change_id}/resolve")
async def resolve_change(
    change_id: str,
    body: ResolveRequest | None = None,
    rt: DashboardRuntime = Depends(get_runtime),
):
    body = body or ResolveRequest()
    record = await _lookup(rt, change_id)
    updated = await rt.resolve(record.id, actor=body.resolved_by, notes=body.notes)
    return _change_payload(rt, updated)


@app.post("/api/changes/{change_id}/ignore")
async def ignore_change(
    change_id: str,
    body: IgnoreRequest | None = None,
    rt: DashboardRuntime = Depends(get_runtime),
):
    body = body or IgnoreRequest()
    record = await _lookup(rt, change_id)
    updated = await rt.ignore(record.id, actor=body.ignored_by, reason=body.reason)
    return _change_payload(rt, updated)


# ---------------------------------------------------------------------------
# Baseline and analysis
# ---------------------------------------------------------------------------

@app.post("/api/baseline/{service_name}/set-latest")
async def set_latest_baseline(service_name: str, rt: DashboardRuntime = Depends(get_runtime)):
    await rt.set_latest_as_baseline(service_name)
    return {"message": f"Latest spec set as baseline for {service_name}"}


@app.delete("/api/baseline/{service_name}")
async def clear_baseline(service_name: str, rt: DashboardRuntime = Depends(get_runtime)):
    await rt.clear_baseline(service_name)
    return {"message": f"Baseline cleared for {service_name}"}


@app.post("/api/analysis/{service_name}")
async def analyze_service(service_name: str, rt: DashboardRuntime = Depends(get_runtime)):
    return await rt.analyze(service_name)
