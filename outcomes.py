"""
Tagged outcome of a single call to the licensing authority.

Every authority operation resolves to exactly one of:

- ``Ok``: the authority answered with a 2xx and a parsable body
- ``Rejected``: the authority was reached and declined (status 400-409)
- ``Fault``: anything else (unreachable, server error, malformed body)
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

REJECTION_STATUS_MIN = 400
REJECTION_STATUS_MAX = 409

@dataclass(frozen=True)
class Ok:
    payload: Dict[str, Any]

@dataclass(frozen=True)
class Rejected:
    error_code: Optional[str] = None
    status_code: Optional[int] = None

@dataclass(frozen=True)
class Fault:
    cause: BaseException

    def reraise(self):
        raise self.cause

Outcome = Union[Ok, Rejected, Fault]

def is_rejection_status(status_code: int) -> bool:
    return REJECTION_STATUS_MIN <= status_code <= REJECTION_STATUS_MAX
