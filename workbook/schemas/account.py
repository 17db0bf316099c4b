from pydantic import BaseModel, Field

from services.step_engine.models import WireModel
from workbook.services.identity import UserProfile


class RoleRequest(BaseModel):
    phrase: str = Field(..., description="Shared sponsor phrase.")


class RoleResponse(WireModel):
    elevated: bool
    profile: UserProfile
