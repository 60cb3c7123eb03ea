from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from .periods import Period


class RawCollections(BaseModel):
    weight: list[Any] = Field(default_factory=list)
    sleep: list[Any] = Field(default_factory=list)
    waist: list[Any] = Field(default_factory=list)
    steps: list[Any] = Field(default_factory=list)
    analytics: list[Any] = Field(default_factory=list)


class ComputeRequest(BaseModel):
    currentPeriod: Optional[Period] = None
    previousPeriod: Optional[Period] = None
    current: RawCollections = Field(default_factory=RawCollections)
    previous: RawCollections = Field(default_factory=RawCollections)
    useStepsFallback: bool = False


class Kpi(BaseModel):
    current: Optional[float] = None
    previous: Optional[float] = None
    change: Optional[float] = None


class ChartData(BaseModel):
    weightData: list[dict[str, Any]]
    compositionData: list[dict[str, Any]]
    sleepData: list[dict[str, Any]]
    stepsData: list[dict[str, Any]]
    waistData: list[dict[str, Any]]


class DashboardResponse(BaseModel):
    kpis: dict[str, Kpi]
    chartData: ChartData
    estimates: dict[str, list[str]] = Field(default_factory=dict)
    recordCounts: dict[str, dict[str, int]] = Field(default_factory=dict)
    analytics: list[dict[str, Any]] = Field(default_factory=list)
    periods: Optional[dict[str, Any]] = None
    period: Optional[int] = None


class StatusResponse(BaseModel):
    ok: bool
    providerUrl: str


class PromptResponse(BaseModel):
    type: Literal["current", "general"]
    context: dict[str, Any]
    prompt: str
