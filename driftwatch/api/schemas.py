from pydantic import BaseModel, Field


class BalanceRequest(BaseModel):
    allocations: dict[str, float] = Field(default_factory=dict)


class BalanceResponse(BaseModel):
    allocations: dict[str, float]
    total: float
    balanced: bool


class TargetAllocationsRequest(BaseModel):
    allocations: dict[str, float]


class ToggleRequest(BaseModel):
    active: bool


class HealthResponse(BaseModel):
    ok: bool
    state: str
    rules: str
