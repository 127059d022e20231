"""
Structured error payload handed to ``failure`` callbacks.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    error_name: str = Field(..., alias="errorName", examples=["taken"])
    error_name_full: str = Field(..., alias="errorNameFull", examples=["UserAccounts.register.taken"])
    error_data: Optional[Dict[str, Any]] = Field(None, alias="errorData")


__all__ = ["ErrorResponse"]
