from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    CONFLICT = "conflict"
    UPSTREAM_FAILURE = "upstream_failure"
    FAULT = "fault"


class ServiceResult(BaseModel):
    """Единый результат мутирующих операций. Ожидаемые бизнес-ошибки не бросаются"""
    success: bool
    message: str
    kind: Optional[FailureKind] = None
    data: Any = None

    @classmethod
    def ok(cls, message: str = "Operation successful", data: Any = None) -> "ServiceResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, kind: FailureKind = FailureKind.FAULT) -> "ServiceResult":
        return cls(success=False, message=message, kind=kind)
