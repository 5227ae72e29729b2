"""
Request and response models for the Portal service.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PrincipalPayload(BaseModel):
    """Signed-in identity forwarded by the client."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    uid: str = Field(..., min_length=1)
    email: str = ""
    display_name: Optional[str] = None
    photo_url: Optional[str] = Field(None, alias="photoURL")


class LoginRequest(BaseModel):
    principal: PrincipalPayload
    flags: Optional[Dict[str, Any]] = None


class LoginResponse(BaseModel):
    """Everything the dashboard needs after sign-in."""
    role: str
    created: bool
    profile: Dict[str, Any]
    features: Dict[str, List[str]] = Field(default_factory=dict)
