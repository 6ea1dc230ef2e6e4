"""Tagged result values returned across the gateway and cache boundaries.

Every fetch or bulk write resolves to either ``Ok(value)`` or
``Err(kind, message)``; nothing raises past those boundaries. A remote
"row not found" is ``Ok(None)``, not an ``Err``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    STORAGE_WRITE = "storage_write"
    QUOTA_EXCEEDED = "quota_exceeded"
    CANCELLED = "cancelled"
    VALIDATION = "validation"


@dataclass(frozen=True)
class Ok:
    value: Any = None
    ok = True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    ok = False

    def __str__(self):
        return f"{self.kind.value}: {self.message}"


Result = Union[Ok, Err]

CANCELLED = Err(ErrorKind.CANCELLED, "Cancelled")
