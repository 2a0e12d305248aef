from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

# Amounts are accepted as text (as typed in the form) or numbers.
Amount = Optional[Union[str, float]]


class ProductTotalRequest(BaseModel):
    unit_price: Amount = None
    quantity: Amount = "1"
    schedule_revenues: List[Amount] = Field(
        default_factory=list,
        description="Revenue of every schedule attached to the product",
    )


class ProductTotalResponse(BaseModel):
    total_price: str
    derived_from: Literal["schedules", "unit_price"]


class ScheduleCalcRequest(BaseModel):
    revenue: Amount = None
    split_percent: Amount = None
    talent_amount: Amount = None
    commission_amount: Amount = None
    edited_field: Literal["revenue", "split_percent", "talent_amount", "commission_amount"]
    value: Amount = None


class ScheduleCalcResponse(BaseModel):
    revenue: str
    split_percent: str
    talent_amount: str
    commission_amount: str


class DealSplitScheduleInput(BaseModel):
    revenue: Amount = None
    split_percent: Amount = None


class DealSplitRequest(BaseModel):
    schedules: List[DealSplitScheduleInput] = Field(default_factory=list)
    split_on_schedule_basis: bool = False


class DealSplitResponse(BaseModel):
    split_percent: Optional[str] = Field(
        None, description="Null when no schedule carries a split (manual value stays)"
    )
    locked: bool


class AgentSplitsRequest(BaseModel):
    operation: Literal["equal", "add", "remove", "set"]
    splits: Dict[str, str] = Field(default_factory=dict)
    payee_ids: List[str] = Field(default_factory=list, description="Used by 'equal'")
    payee_id: Optional[str] = Field(None, description="Used by 'add', 'remove' and 'set'")
    value: Amount = Field(None, description="Used by 'set'")
    commission_amount: Amount = Field(None, description="When set, payout rows are returned")
    names: Dict[str, str] = Field(default_factory=dict)


class SplitRow(BaseModel):
    agentName: str
    agentId: Optional[str] = None
    splitPercent: float
    splitAmount: float


class AgentSplitsResponse(BaseModel):
    splits: Dict[str, str]
    total: str
    balanced: bool
    rows: Optional[List[SplitRow]] = None
