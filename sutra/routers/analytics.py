from fastapi import APIRouter, Depends

from sutra.deps.auth import require_admin
from sutra.services.analytics import platform_stats, summarize_kpis

router = APIRouter()
public_router = APIRouter()


@router.get("", dependencies=[Depends(require_admin)])
async def analytics():
    return summarize_kpis()


@public_router.get("")
async def stats():
    return platform_stats()
