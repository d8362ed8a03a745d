from pydantic import BaseModel
from typing import Optional


class SendResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class DispatchResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def failed(cls, error: Exception) -> "DispatchResult":
        return cls(success=False, error=str(error), error_kind=getattr(error, "kind", "internal_error"))


class ConnectionTestResult(BaseModel):
    success: bool
    error: Optional[str] = None
