"""
FastAPI v2 Observability Endpoints for Agri Ledger.

Operational view of a running ledger:
- Operation outcome metrics
- Journal integrity (hash chain verification)
- Per-record lifecycle timelines from the journal

Every figure is read from the shared state directory on each request, so
this app can run in its own process beside the REST API and the CLI.

Usage:
    uvicorn api.v2.observability:app --host 0.0.0.0 --port 8081
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from agri_ledger import __schema__, __version__
from agri_ledger.service import ProvenanceLedger, open_ledger
from agri_ledger.settings import Settings

# --- Pydantic Models for API Responses ---

class HealthResponse(BaseModel):
    status: str
    version: str
    schema_version: str
    last_sequence_id: int
    current_height: int
    timestamp: str


class MetricsResponse(BaseModel):
    counters: Dict[str, int]
    gauges: Dict[str, float]


class JournalVerifyResponse(BaseModel):
    """Hash chain verification of the operation journal."""
    enabled: bool
    intact: bool
    entries: int
    tip_hash: Optional[str] = None


class TimelineEvent(BaseModel):
    """Single committed operation in a record's lifecycle."""
    recorded_utc: str
    height: int
    operation: str
    caller: str
    detail: Dict[str, Any]


class TimelineResponse(BaseModel):
    sequence_id: int
    events: List[TimelineEvent]


def _ledger(request: Request) -> ProvenanceLedger:
    ledger = request.app.state.ledger
    if ledger is None:
        ledger = open_ledger(Settings.load())
        request.app.state.ledger = ledger
    return ledger


def create_app(ledger: Optional[ProvenanceLedger] = None) -> FastAPI:
    app = FastAPI(
        title="Agri Ledger Observability API",
        description="Operation metrics, journal integrity and record timelines",
        version="2.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.ledger = ledger

    @app.get("/v2/health", response_model=HealthResponse)
    def health(request: Request) -> HealthResponse:
        led = _ledger(request)
        return HealthResponse(
            status="healthy",
            version=__version__,
            schema_version=__schema__,
            last_sequence_id=led.last_sequence_id(),
            current_height=led.current_height(),
            timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        )

    @app.get("/v2/metrics", response_model=MetricsResponse)
    def metrics(request: Request) -> MetricsResponse:
        return MetricsResponse(**_ledger(request).metrics.snapshot())

    @app.get("/v2/journal/verify", response_model=JournalVerifyResponse)
    def verify_journal(request: Request) -> JournalVerifyResponse:
        journal = _ledger(request).journal
        if journal is None:
            return JournalVerifyResponse(enabled=False, intact=True, entries=0)
        return JournalVerifyResponse(
            enabled=True,
            intact=journal.verify(),
            entries=len(journal),
            tip_hash=journal.tip_hash(),
        )

    @app.get("/v2/records/{sequence_id}/timeline", response_model=TimelineResponse)
    def timeline(sequence_id: int, request: Request) -> TimelineResponse:
        journal = _ledger(request).journal
        if journal is None:
            raise HTTPException(status_code=404, detail="Journal disabled")
        blocks = journal.find_by("sequence_id", sequence_id)
        if not blocks:
            raise HTTPException(status_code=404, detail=f"No journal entries for record {sequence_id}")
        events = [
            TimelineEvent(
                recorded_utc=b["entry"]["recorded_utc"],
                height=b["entry"]["height"],
                operation=b["entry"]["operation"],
                caller=b["entry"]["caller"],
                detail=b["entry"].get("detail", {}),
            )
            for b in blocks
        ]
        return TimelineResponse(sequence_id=sequence_id, events=events)

    return app


app = create_app()
