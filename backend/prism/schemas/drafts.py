from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from prism.models import DraftStatus, SubmissionOutcome
from prism.schemas.calculators import Amount
from prism.services.deal_financials import DealStage, PaymentTerms, ScheduleType

# Set through their own endpoints, not as plain deal fields.
_AGGREGATE_FIELDS = {"owner", "additional_agents", "split_on_schedule_basis"}


class AgentRefIn(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""


class DealFieldsIn(BaseModel):
    name: Optional[str] = None
    stage: Optional[DealStage] = None
    division: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    brand_id: Optional[str] = None
    brand_name: Optional[str] = None
    talent_client_ids: Optional[List[str]] = None
    amount: Amount = None
    contract_amount: Amount = None
    split_percent: Amount = None
    contract_start_date: Optional[str] = None
    contract_end_date: Optional[str] = None
    close_date: Optional[str] = None
    clm_contract_number: Optional[str] = None

    def changes(self) -> Dict[str, object]:
        return self.model_dump(exclude_unset=True, mode="json", exclude=_AGGREGATE_FIELDS)


class DraftCreate(DealFieldsIn):
    owner: Optional[AgentRefIn] = None
    additional_agents: List[AgentRefIn] = Field(default_factory=list)
    split_on_schedule_basis: bool = False


class DraftUpdate(DealFieldsIn):
    pass


class ProductIn(BaseModel):
    product_name: Optional[str] = None
    product_code: Optional[str] = None
    unit_price: Amount = None
    quantity: Amount = None
    total_price: Amount = None
    deliverables: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    division: Optional[str] = None


class ScheduleIn(BaseModel):
    product_id: Optional[str] = None
    description: Optional[str] = None
    schedule_date: Optional[str] = None
    revenue: Amount = None
    payment_terms: Optional[PaymentTerms] = None
    type: Optional[ScheduleType] = None
    split_percent: Amount = None
    talent_amount: Amount = None
    commission_amount: Amount = None
    billable: Optional[bool] = None


class AgentsUpdate(BaseModel):
    owner: Optional[AgentRefIn] = None
    additional_agents: List[AgentRefIn] = Field(default_factory=list)


class SplitModeUpdate(BaseModel):
    enabled: bool


class PercentUpdate(BaseModel):
    percent: Amount = None


class SchedulePayeeCreate(BaseModel):
    agent_id: Optional[str] = None
    custom_name: Optional[str] = None


class AttachmentUpdate(BaseModel):
    description: str = ""


class ProductRead(BaseModel):
    id: str
    product_name: str
    product_code: str
    unit_price: str
    quantity: str
    total_price: str
    deliverables: str
    start_date: str
    end_date: str
    division: str


class ScheduleRead(BaseModel):
    id: str
    product_id: Optional[str] = None
    description: str
    schedule_date: str
    revenue: str
    payment_terms: str
    type: str
    split_percent: str
    talent_amount: str
    commission_amount: str
    billable: bool
    agent_splits: Optional[Dict[str, str]] = None


class AttachmentRead(BaseModel):
    id: str
    file_name: str
    file_type: str
    file_size: int
    file_size_label: str = ""
    icon: str = "file"
    description: str = ""


class AgentRefRead(BaseModel):
    id: str
    name: str


class DealDraftBody(BaseModel):
    name: str
    stage: str
    division: str
    industry: str
    description: str
    brand_id: str
    brand_name: str
    owner: Optional[AgentRefRead] = None
    additional_agents: List[AgentRefRead]
    talent_client_ids: List[str]
    amount: str
    contract_amount: str
    split_percent: str
    split_on_schedule_basis: bool
    agent_splits: Dict[str, str]
    contract_start_date: str
    contract_end_date: str
    close_date: str
    clm_contract_number: str
    attachments: List[AttachmentRead]
    products: List[ProductRead]
    schedules: List[ScheduleRead]


class DraftRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    draft_uuid: str
    status: DraftStatus
    upstream_deal_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    amount_locked: bool
    split_percent_locked: bool
    deal: DealDraftBody


class DraftListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    draft_uuid: str
    name: Optional[str] = None
    division: Optional[str] = None
    status: DraftStatus
    upstream_deal_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PayeeAmountRead(BaseModel):
    payee_id: str
    name: str
    percent: str
    amount: str


class ScheduleSplitStatus(BaseModel):
    schedule_id: str
    total: str
    balanced: bool


class DraftSummaryRead(BaseModel):
    total_product_value: str
    total_schedule_revenue: str
    commission_amount: str
    talent_amount: str
    amount_locked: bool
    split_percent_locked: bool
    agent_splits_total: str
    agent_splits_balanced: bool
    payees: List[PayeeAmountRead]
    schedule_splits: List[ScheduleSplitStatus]
    labels: Dict[str, str]


class SubmissionRead(BaseModel):
    draft_id: int
    deal_id: str
    outcome: SubmissionOutcome
    failed_attachments: List[str] = Field(default_factory=list)
    failed_split_schedules: List[str] = Field(default_factory=list)
    unmatched_schedules: List[str] = Field(default_factory=list)
    omitted_schedules: List[str] = Field(default_factory=list)


class SubmissionLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    outcome: SubmissionOutcome
    upstream_deal_id: Optional[str] = None
    failed_attachments: List[str]
    failed_split_schedules: List[str]
    unmatched_schedules: List[str]
    error: Optional[str] = None
    submitted_by: Optional[str] = None
    created_at: Optional[datetime] = None

