# workbook/auth/schemas.py
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True) # Immutable user state
class AuthenticatedUser:
    id: str
    display_name: Optional[str] = None


class ErrorDetail(BaseModel):
    """Standard error response detail."""
    code: str = Field(..., description="Application-specific error code.")
    message: str = Field(..., description="User-friendly error message.")


class ErrorResponse(BaseModel):
    """Standard error response model."""
    detail: ErrorDetail
