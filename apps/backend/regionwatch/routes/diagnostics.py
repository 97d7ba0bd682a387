"""
Diagnostics endpoint — the buffered non-fatal warnings about upstream data
(malformed boundaries, undrawable rings, bad deltas, undecodable pushes).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from regionwatch.core.dashboard import Dashboard, get_dashboard
from regionwatch.core.diagnostics import Diagnostic

router = APIRouter(prefix="/api/v1/diagnostics", tags=["diagnostics"])


@router.get("", response_model=list[Diagnostic])
async def list_diagnostics(
    code: Optional[str] = Query(None, description="Only return records with this code"),
    dashboard: Dashboard = Depends(get_dashboard),
):
    if code:
        return dashboard.diagnostics.by_code(code)
    return dashboard.diagnostics.records


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_diagnostics(dashboard: Dashboard = Depends(get_dashboard)):
    dashboard.diagnostics.clear()
