"""Error taxonomy shared by the risk engine, the AI gateway and the HTTP layer.

Every failure is scoped to a single request and carries a ``kind`` plus a
human readable message. The ``category`` lets callers tell "retry later"
apart from "fix configuration" and "fix input".
"""
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    FIX_INPUT = "fix_input"
    RETRY_LATER = "retry_later"
    FIX_CONFIGURATION = "fix_configuration"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"


class ErrorKind(str, Enum):
    INVALID_LOCATION = "InvalidLocation"
    UNKNOWN_LOAN_PURPOSE = "UnknownLoanPurpose"
    INVALID_DECISION = "InvalidDecision"
    INVALID_INPUT = "InvalidInput"
    UPSTREAM_TIMEOUT = "UpstreamTimeout"
    RATE_LIMITED = "RateLimited"
    UPSTREAM_ERROR = "UpstreamError"
    MALFORMED_RESPONSE = "MalformedResponse"
    NOT_CONFIGURED = "NotConfigured"
    INVALID_KEY = "InvalidKey"
    INVALID_POLICY = "InvalidPolicy"
    ASSESSMENT_NOT_FOUND = "AssessmentNotFound"
    DECISION_CONFLICT = "DecisionConflict"
    ACCESS_DENIED = "AccessDenied"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]


_CATEGORIES = {
    ErrorKind.INVALID_LOCATION: ErrorCategory.FIX_INPUT,
    ErrorKind.UNKNOWN_LOAN_PURPOSE: ErrorCategory.FIX_INPUT,
    ErrorKind.INVALID_DECISION: ErrorCategory.FIX_INPUT,
    ErrorKind.INVALID_INPUT: ErrorCategory.FIX_INPUT,
    ErrorKind.MALFORMED_RESPONSE: ErrorCategory.RETRY_LATER,
    ErrorKind.UPSTREAM_TIMEOUT: ErrorCategory.RETRY_LATER,
    ErrorKind.RATE_LIMITED: ErrorCategory.RETRY_LATER,
    ErrorKind.UPSTREAM_ERROR: ErrorCategory.RETRY_LATER,
    ErrorKind.NOT_CONFIGURED: ErrorCategory.FIX_CONFIGURATION,
    ErrorKind.INVALID_KEY: ErrorCategory.FIX_CONFIGURATION,
    ErrorKind.INVALID_POLICY: ErrorCategory.FIX_CONFIGURATION,
    ErrorKind.ASSESSMENT_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorKind.DECISION_CONFLICT: ErrorCategory.CONFLICT,
    ErrorKind.ACCESS_DENIED: ErrorCategory.FORBIDDEN,
}


class ClimateCreditError(Exception):
    kind: ErrorKind = ErrorKind.UPSTREAM_ERROR

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    @property
    def category(self) -> ErrorCategory:
        return self.kind.category

    def to_dict(self) -> dict:
        return {
            "error": self.kind.value,
            "kind": self.kind.value,
            "category": self.category.value,
            "message": self.message,
        }


class InvalidLocation(ClimateCreditError):
    kind = ErrorKind.INVALID_LOCATION


class UnknownLoanPurpose(ClimateCreditError):
    kind = ErrorKind.UNKNOWN_LOAN_PURPOSE


class InvalidDecision(ClimateCreditError):
    kind = ErrorKind.INVALID_DECISION


class InvalidPolicy(ClimateCreditError):
    kind = ErrorKind.INVALID_POLICY


class AssessmentNotFound(ClimateCreditError):
    kind = ErrorKind.ASSESSMENT_NOT_FOUND


class DecisionConflict(ClimateCreditError):
    kind = ErrorKind.DECISION_CONFLICT


class AccessDenied(ClimateCreditError):
    kind = ErrorKind.ACCESS_DENIED


class DraftIncomplete(ClimateCreditError):
    kind = ErrorKind.INVALID_INPUT


class ProviderError(ClimateCreditError):
    """Raised inside provider adapters; never crosses the gateway boundary."""

    def __init__(self, provider: str, kind: ErrorKind, message: str):
        super().__init__(message, kind=kind)
        self.provider = provider
