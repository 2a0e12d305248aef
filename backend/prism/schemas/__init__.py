from prism.schemas.calculators import (
    AgentSplitsRequest,
    AgentSplitsResponse,
    DealSplitRequest,
    DealSplitResponse,
    ProductTotalRequest,
    ProductTotalResponse,
    ScheduleCalcRequest,
    ScheduleCalcResponse,
)
from prism.schemas.drafts import (
    AgentsUpdate,
    AttachmentRead,
    AttachmentUpdate,
    DraftCreate,
    DraftListItem,
    DraftRead,
    DraftSummaryRead,
    DraftUpdate,
    PercentUpdate,
    ProductIn,
    ProductRead,
    ScheduleIn,
    SchedulePayeeCreate,
    ScheduleRead,
    SplitModeUpdate,
    SubmissionLogRead,
    SubmissionRead,
)
from prism.schemas.labels import (
    AllLabelMappingsRead,
    DivisionLabels,
    LabelMappingRead,
    LabelMappingUpdate,
    LabelSeedResult,
)

__all__ = [
    "AgentSplitsRequest",
    "AgentSplitsResponse",
    "AgentsUpdate",
    "AllLabelMappingsRead",
    "AttachmentRead",
    "AttachmentUpdate",
    "DealSplitRequest",
    "DealSplitResponse",
    "DivisionLabels",
    "DraftCreate",
    "DraftListItem",
    "DraftRead",
    "DraftSummaryRead",
    "DraftUpdate",
    "LabelMappingRead",
    "LabelMappingUpdate",
    "LabelSeedResult",
    "PercentUpdate",
    "ProductIn",
    "ProductRead",
    "ProductTotalRequest",
    "ProductTotalResponse",
    "ScheduleCalcRequest",
    "ScheduleCalcResponse",
    "ScheduleIn",
    "SchedulePayeeCreate",
    "ScheduleRead",
    "SplitModeUpdate",
    "SubmissionLogRead",
    "SubmissionRead",
]
