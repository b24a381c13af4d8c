"""
Uniform result envelope returned by every Roof Finder operation.
"""
from typing import Any, Optional

from pydantic import BaseModel

from roof_finder.core.exceptions import RoofFinderError


class ErrorInfo(BaseModel):
    code: str
    message: str


class ServiceResult(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: RoofFinderError, data: Any = None) -> "ServiceResult":
        if data is None:
            data = getattr(exc, "data", None)
        return cls(
            success=False,
            data=data,
            error=ErrorInfo(code=exc.code, message=exc.message),
        )

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None
