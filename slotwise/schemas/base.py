"""
Base Schemas

Core Pydantic models shared by every HTTP payload.

- ApiModel: camelCase on the wire, snake_case in Python
- ErrorDetail / ErrorResponse: the {code, message, details} error shape
- ResponseMeta: counts, strategy and trace id attached to list responses
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """
    Base for request/response bodies.

    Accepts both camelCase and snake_case input; FastAPI serializes
    responses by alias, so clients always see camelCase.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorDetail(BaseModel):
    field: str = Field(..., description="Offending field path, e.g. 'candidates.0.date'")
    issue: str = Field(..., description="What is wrong with it")


class ErrorResponse(BaseModel):
    """
    Standard error response structure.

    Rendered for every AppError and for request validation failures.
    """
    code: str = Field(..., description="Machine-readable error code (e.g. capacity_exceeded)")
    message: str = Field(..., description="Human-readable message")
    details: List[ErrorDetail] = Field(default_factory=list, description="Field-level issues")


class DateRange(ApiModel):
    start: date
    end: date


class ResponseMeta(ApiModel):
    """Metadata attached to recommendation responses."""
    total: int = Field(..., ge=0, description="Number of candidates returned")
    recommended_count: int = Field(0, ge=0, description="Candidates flagged recommended")
    strategy: str = Field(..., description="weighted_score or chronological_fallback")
    date_range: Optional[DateRange] = None
    trace_id: Optional[str] = None
