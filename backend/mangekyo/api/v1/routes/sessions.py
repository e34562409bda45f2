"""Reading session API routes."""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from mangekyo.api.dependencies import Orchestrator

router = APIRouter()


class StartSessionRequest(BaseModel):
    """Request to start a reading session."""
    manga_id: str = Field(..., min_length=1)
    chapter_id: Optional[str] = None
    page: int = Field(default=0, ge=0)


class TermCheckRequest(BaseModel):
    term: str = Field(..., min_length=1)
    proposed: str = Field(..., min_length=1)


class TermRecordRequest(TermCheckRequest):
    category: Optional[str] = None


@router.post("/sessions")
async def start_session(body: StartSessionRequest, orchestrator: Orchestrator) -> dict:
    """Start a session, restoring saved context for the manga."""
    await orchestrator.context.initialize_session(body.manga_id, body.chapter_id, body.page)
    return orchestrator.context.generate_summary()


@router.get("/sessions/summary")
async def session_summary(orchestrator: Orchestrator) -> dict:
    """Summarize the current session."""
    return orchestrator.context.generate_summary()


@router.post("/sessions/end")
async def end_session(orchestrator: Orchestrator, persist: bool = True) -> dict:
    """Save and end the current session."""
    await orchestrator.context.end_session(persist=persist)
    return {"status": "ended"}


@router.get("/sessions/export")
async def export_session(orchestrator: Orchestrator) -> dict:
    """Export characters, glossary and translation memory."""
    return orchestrator.context.export_context()


@router.post("/sessions/terms/check")
async def check_term(body: TermCheckRequest, orchestrator: Orchestrator) -> dict:
    """Check a proposed rendering against the glossary."""
    check = orchestrator.context.check_terminology_consistency(body.term, body.proposed)
    return {**asdict(check), "action": check.action.value, "consistent": check.consistent}


@router.post("/sessions/terms")
async def record_term(body: TermRecordRequest, orchestrator: Orchestrator) -> dict:
    """Record a term rendering in the glossary."""
    check = orchestrator.context.record_term(body.term, body.proposed, body.category)
    return {**asdict(check), "action": check.action.value, "consistent": check.consistent}
