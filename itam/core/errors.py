from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ItamError(Exception):
    """Base class for business errors raised by the inventory core."""

    code = "error"

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class NotFound(ItamError):
    code = "not_found"


class PartNotFound(NotFound):
    code = "part_not_found"


class SoftwareNotFound(NotFound):
    code = "software_not_found"


class LicenseNotFound(NotFound):
    code = "license_not_found"


class InvalidRequest(ItamError, ValueError):
    code = "invalid_request"


class InsufficientStock(ItamError):
    code = "insufficient_stock"


class NoInventoryAvailable(InsufficientStock):
    code = "no_inventory_available"


class LicenseExhausted(ItamError):
    code = "license_exhausted"


class LicenseIdentifierMissing(ItamError):
    code = "license_identifier_missing"


class IssuanceResult(BaseModel):
    """Uniform envelope returned by the issuance entry points."""

    success: bool
    message: str
    code: str | None = None
    data: dict[str, Any] | None = None
    details: Any | None = None

    @classmethod
    def ok(cls, message: str, **data: Any) -> "IssuanceResult":
        return cls(success=True, message=message, data=data or None)

    @classmethod
    def failure(cls, message: str, *, code: str = "error", details: Any | None = None) -> "IssuanceResult":
        return cls(success=False, message=message, code=code, details=details)

    @classmethod
    def from_error(cls, exc: ItamError) -> "IssuanceResult":
        return cls.failure(exc.message, code=exc.code, details=exc.details)


__all__ = [
    "ItamError",
    "NotFound",
    "PartNotFound",
    "SoftwareNotFound",
    "LicenseNotFound",
    "InvalidRequest",
    "InsufficientStock",
    "NoInventoryAvailable",
    "LicenseExhausted",
    "LicenseIdentifierMissing",
    "IssuanceResult",
]
