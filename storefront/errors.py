"""Application error taxonomy.

Every failure a service can report is an `AppError` carrying a discriminating
`kind`. The FastAPI layer translates them in one place (see `main.py`).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    BUSINESS_RULE = "business_rule"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    UNAVAILABLE = "unavailable"


STATUS_CODES = {
    ErrorKind.UNAVAILABLE: 503,
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.BUSINESS_RULE: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.UNAUTHORIZED: 401,
}


@dataclass(frozen=True)
class FieldError:
    field: Optional[str]
    message: str


class AppError(Exception):
    kind: ErrorKind = ErrorKind.BUSINESS_RULE

    def __init__(self, message: str, field: Optional[str] = None,
                 errors: Optional[List[FieldError]] = None):
        super().__init__(message)
        self.message = message
        self.errors = list(errors) if errors else [FieldError(field, message)]

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_dict(self) -> dict:
        return {
            "success": False,
            "kind": self.kind.value,
            "message": self.message,
            "errors": [{"field": e.field, "message": e.message} for e in self.errors],
        }


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(AppError):
    kind = ErrorKind.CONFLICT


class BusinessRuleError(AppError):
    kind = ErrorKind.BUSINESS_RULE


class ForbiddenError(AppError):
    kind = ErrorKind.FORBIDDEN


class UnauthorizedError(AppError):
    kind = ErrorKind.UNAUTHORIZED


class ServiceUnavailableError(AppError):
    kind = ErrorKind.UNAVAILABLE


class CouponRejection(str, Enum):
    NOT_FOUND = "NotFound"
    INACTIVE = "Inactive"
    NOT_YET_VALID = "NotYetValid"
    EXPIRED = "Expired"
    USAGE_LIMIT_REACHED = "UsageLimitReached"
    USER_LIMIT_REACHED = "UserLimitReached"
    NOT_APPLICABLE = "NotApplicable"
    MIN_ORDER_NOT_MET = "MinOrderNotMet"


_COUPON_MESSAGES = {
    CouponRejection.NOT_FOUND: "Invalid coupon code",
    CouponRejection.INACTIVE: "Coupon is inactive",
    CouponRejection.NOT_YET_VALID: "Coupon is not yet valid",
    CouponRejection.EXPIRED: "Coupon has expired",
    CouponRejection.USAGE_LIMIT_REACHED: "Coupon usage limit reached",
    CouponRejection.USER_LIMIT_REACHED: "You have already used this coupon the maximum number of times",
    CouponRejection.NOT_APPLICABLE: "This coupon does not apply to any items in your cart",
    CouponRejection.MIN_ORDER_NOT_MET: "Minimum order amount not met",
}


class CouponError(AppError):
    """A coupon was rejected; `reason` says which check failed."""

    def __init__(self, reason: CouponRejection, message: Optional[str] = None):
        self.reason = reason
        self.kind = ErrorKind.NOT_FOUND if reason is CouponRejection.NOT_FOUND else ErrorKind.BUSINESS_RULE
        super().__init__(message or _COUPON_MESSAGES[reason], field="couponCode")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason.value
        return data
