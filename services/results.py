"""
Structured service results.

Services return a ServiceResult instead of raising for expected failures.
It is a tuple, so callers can unpack it like the (success, errors, data)
tuples used across the service layer, and TransactionHelper commits or rolls
back on its success flag.
"""

from typing import Any, List, NamedTuple, Optional

VALIDATION_ERROR = 'validation'
NOT_FOUND = 'not_found'
STATE_ERROR = 'state'


class ServiceResult(NamedTuple):
    success: bool
    errors: List[str]
    data: Any = None
    kind: Optional[str] = None

    @classmethod
    def ok(cls, data=None):
        return cls(True, [], data, None)

    @classmethod
    def invalid(cls, errors, data=None):
        return cls(False, list(errors), data, VALIDATION_ERROR)

    @classmethod
    def not_found(cls, message):
        return cls(False, [message], None, NOT_FOUND)

    @classmethod
    def state_error(cls, message, data=None):
        return cls(False, [message], data, STATE_ERROR)

    @property
    def error(self) -> Optional[str]:
        """First error message, for callers that only show one line"""
        return self.errors[0] if self.errors else None
