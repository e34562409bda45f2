"""Translation API routes."""

from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from mangekyo.api.dependencies import Orchestrator, translation_http_error
from mangekyo.core.context import PageInfo
from mangekyo.core.translation.errors import TranslationError
from mangekyo.core.translation.markers import HonorificBatchStats, SFXUsageStats
from mangekyo.core.translation.models import TranslationRequest, TranslationResult

router = APIRouter()


class BatchTranslateRequest(BaseModel):
    """Request to translate several bubbles."""
    requests: List[TranslationRequest] = Field(..., min_length=1)


class PageTranslateRequest(BaseModel):
    """Request to translate all bubbles of a page."""
    page_number: int = Field(..., ge=0)
    requests: List[TranslationRequest]
    page_info: Optional[PageInfo] = None
    next_page: List[TranslationRequest] = Field(
        default_factory=list, description="Bubbles of the next page, preloaded in the background"
    )


class BatchTranslateResponse(BaseModel):
    results: List[TranslationResult]
    failed: int


class AnalyzeRequest(BaseModel):
    """Bubbles of a page or chapter to analyze."""
    texts: List[str] = Field(..., min_length=1)


class AnalyzeResponse(BaseModel):
    honorifics: HonorificBatchStats
    sfx: SFXUsageStats


@router.post("/translate")
async def translate(request: TranslationRequest, orchestrator: Orchestrator) -> TranslationResult:
    """Translate a single bubble."""
    try:
        return await orchestrator.translate(request)
    except TranslationError as e:
        raise translation_http_error(e)


@router.post("/translate/batch")
async def translate_batch(
    body: BatchTranslateRequest, orchestrator: Orchestrator
) -> BatchTranslateResponse:
    """Translate several bubbles. Failed items come back as placeholders."""
    results = await orchestrator.translate_batch(body.requests)
    return BatchTranslateResponse(results=results, failed=sum(1 for r in results if r.failed))


@router.post("/translate/page")
async def translate_page(
    body: PageTranslateRequest, orchestrator: Orchestrator
) -> BatchTranslateResponse:
    """Translate a page and preload the next one."""
    results = await orchestrator.translate_page(
        body.page_number, body.requests, body.page_info, body.next_page
    )
    return BatchTranslateResponse(results=results, failed=sum(1 for r in results if r.failed))


@router.post("/translate/analyze")
async def analyze_markers(body: AnalyzeRequest, orchestrator: Orchestrator) -> AnalyzeResponse:
    """Summarize honorific and SFX usage, with a recommended honorific mode."""
    markers = orchestrator.markers
    return AnalyzeResponse(
        honorifics=markers.honorifics.analyze_batch(body.texts),
        sfx=markers.sfx.analyze_usage(body.texts),
    )
