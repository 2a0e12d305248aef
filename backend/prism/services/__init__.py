from prism.services import agent_splits, deal_drafts, deal_financials, money
from prism.services.audit import audit_event

__all__ = [
    "agent_splits",
    "audit_event",
    "deal_drafts",
    "deal_financials",
    "money",
]
