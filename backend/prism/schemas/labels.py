from typing import Dict

from pydantic import BaseModel, Field


class DivisionLabels(BaseModel):
    agent: str = Field(..., min_length=1, max_length=64)
    agents: str = Field(..., min_length=1, max_length=64)
    deal: str = Field(..., min_length=1, max_length=64)
    deals: str = Field(..., min_length=1, max_length=64)


class LabelMappingRead(BaseModel):
    division: str
    labels: DivisionLabels


class LabelMappingUpdate(BaseModel):
    division: str = Field(..., min_length=1, max_length=128)
    labels: DivisionLabels


class AllLabelMappingsRead(BaseModel):
    mappings: Dict[str, DivisionLabels]


class LabelSeedResult(BaseModel):
    created: int
