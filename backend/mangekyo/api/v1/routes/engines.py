"""Engine status API routes."""

from typing import List

from fastapi import APIRouter

from mangekyo.api.dependencies import Orchestrator
from mangekyo.core.translation.models import HealthStatus, UsageStats

router = APIRouter()


@router.get("/engines/health")
async def engines_health(orchestrator: Orchestrator) -> List[HealthStatus]:
    """Probe the configured engines."""
    return await orchestrator.health_check()


@router.get("/engines/usage")
async def engines_usage(orchestrator: Orchestrator) -> List[dict]:
    """Running usage counters per engine. Advisory only."""
    stats: List[UsageStats] = orchestrator.get_usage_stats()
    return [
        {**s.model_dump(mode="json"), "quota_used": s.quota_used, "quota_used_ratio": s.quota_used_ratio}
        for s in stats
    ]
