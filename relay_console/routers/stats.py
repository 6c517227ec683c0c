"""
Usage statistics endpoints.

- GET    /api/stats          — summary, selected period, snapshot, models, percentages
- POST   /api/stats/refresh  — refresh for the active token (?full=true pre-warms both periods)
- POST   /api/stats/period   — switch the selected period
- DELETE /api/stats/error    — dismiss the last error
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, Response, status

from relay_console.core.errors import ValidationError
from relay_console.models.api import PeriodSwitchRequest, error_view
from relay_console.routers.deps import get_console
from relay_console.services.console import RelayConsole

logger = logging.getLogger(__name__)

router = APIRouter()


def _stats_view(console: RelayConsole) -> dict:
    stats = console.stats
    summary = stats.summary
    return {
        "account_id": stats.account_id,
        "summary": summary.model_dump(by_alias=True) if summary else None,
        "period": stats.period,
        "current": stats.current_snapshot().model_dump(by_alias=True),
        "models": [m.model_dump(by_alias=True) for m in stats.model_stats()],
        "percentages": asdict(stats.usage_percentages()),
        "loading": stats.loading,
        "model_stats_loading": stats.model_stats_loading,
        "error": error_view(stats.last_error),
    }


@router.get("/stats")
async def get_stats(console: RelayConsole = Depends(get_console)):
    return _stats_view(console)


@router.post("/stats/refresh")
async def refresh_stats(
    full: bool = Query(False, description="Also pre-warm the other period"),
    console: RelayConsole = Depends(get_console),
):
    if full:
        active = console.catalog.get_active()
        if active is None:
            raise ValidationError(detail="Add an API token first", code="RC-TOK-004")
        result = await console.stats.load_all(active.value)
    else:
        result = await console.stats.refresh_active()
    if not result.ok:
        raise result.error
    return _stats_view(console)


@router.post("/stats/period")
async def switch_period(body: PeriodSwitchRequest, console: RelayConsole = Depends(get_console)):
    await console.stats.switch_period(body.period)
    return _stats_view(console)


@router.delete("/stats/error", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_error(console: RelayConsole = Depends(get_console)):
    console.stats.dismiss_error()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
