from __future__ import annotations

from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query

from . import settings
from .dashboard import NoHealthDataError, build_dashboard, default_steps_fallback, load_dashboard
from .logging_config import setup_logging
from .models import ComputeRequest, DashboardResponse, PromptResponse, StatusResponse
from .periods import PeriodRange
from .prompt_gen import build_patient_context, build_prompt
from .provider import ProviderClient
from .security import require_api_key

app = FastAPI(title="Health KPI Service", version="0.1.0")


@app.on_event("startup")
def _startup() -> None:
    setup_logging(debug=settings.LOG_DEBUG)


def get_provider_client() -> ProviderClient:
    return ProviderClient()


async def _load(
    client: ProviderClient,
    user_id: str,
    period: int,
    find_by_hc: bool,
) -> dict[str, Any]:
    try:
        return await load_dashboard(
            client,
            user_id,
            period,
            by_clinical_record=find_by_hc,
            steps_fallback=default_steps_fallback(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except NoHealthDataError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@app.get("/api/status", response_model=StatusResponse)
def status(_: None = Depends(require_api_key)) -> StatusResponse:
    return StatusResponse(ok=True, providerUrl=settings.PROVIDER_API_URL)


@app.get("/api/dashboard", response_model=DashboardResponse)
async def dashboard(
    user_id: str = Query(alias="userId", min_length=1),
    period: int = 30,
    find_by_hc: bool = Query(default=False, alias="findByHc"),
    client: ProviderClient = Depends(get_provider_client),
    _: None = Depends(require_api_key),
) -> dict[str, Any]:
    return await _load(client, user_id, period, find_by_hc)


@app.post("/api/kpis", response_model=DashboardResponse)
def compute_kpis(req: ComputeRequest, _: None = Depends(require_api_key)) -> dict[str, Any]:
    """Compute KPIs and chart series from collections the caller already fetched."""
    periods = None
    if req.currentPeriod is not None and req.previousPeriod is not None:
        periods = PeriodRange(current=req.currentPeriod, previous=req.previousPeriod)

    return build_dashboard(
        req.current.model_dump(),
        req.previous.model_dump(),
        periods=periods,
        steps_fallback=default_steps_fallback() if req.useStepsFallback else None,
    )


@app.get("/api/prompt", response_model=PromptResponse)
async def prompt(
    user_id: str = Query(alias="userId", min_length=1),
    period: int = 30,
    type: str = "current",
    find_by_hc: bool = Query(default=False, alias="findByHc"),
    client: ProviderClient = Depends(get_provider_client),
    _: None = Depends(require_api_key),
) -> PromptResponse:
    # validate before hitting the provider
    try:
        build_patient_context({}, type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    result = await _load(client, user_id, period, find_by_hc)
    context = build_patient_context(result, type)
    return PromptResponse(type=type, context=context, prompt=build_prompt(type, context))
