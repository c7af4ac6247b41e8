from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CallbackParams(BaseModel):
    """Query parameters of the login entry point and provider callback."""

    model_config = ConfigDict(extra="ignore")

    action: Optional[str] = Field(default=None, description="Provider identifier")
    code: Optional[str] = Field(default=None, description="Authorization code")
    state: Optional[str] = Field(default=None, description="CSRF state round trip")
    error: Optional[str] = Field(default=None, description="Provider error code")
    error_description: Optional[str] = Field(
        default=None, description="Provider error description"
    )

    def callback_values(self) -> dict[str, Any]:
        return self.model_dump(exclude={"action"}, exclude_none=True)
