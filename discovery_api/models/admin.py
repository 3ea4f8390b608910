"""Request/response models for admin endpoints."""

from typing import List

from pydantic import BaseModel

from discovery.models import InvalidationRule


class InvalidatePatternRequest(BaseModel):
    pattern: str


class InvalidatePatternResponse(BaseModel):
    pattern: str
    deleted: int


class InvalidateEventResponse(BaseModel):
    results: List[InvalidatePatternResponse]


class RulesResponse(BaseModel):
    rules: List[InvalidationRule]
