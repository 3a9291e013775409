from __future__ import annotations

from fastapi import APIRouter, Depends

from tablehold.api.dependencies import Container, get_container
from tablehold.application.dto.responses import SweeperStatsResponse

router = APIRouter()


@router.get("/v1/ops/sweeper", response_model=SweeperStatsResponse)
def sweeper_stats(container: Container = Depends(get_container)) -> SweeperStatsResponse:
    return container.sweeper.stats()
