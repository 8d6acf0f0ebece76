from __future__ import annotations

import re
from typing import Any


PIN_PATTERN = re.compile(r"[0-9]{4}")


class ApiError(Exception):
    """
    Base class for errors rendered as a JSON envelope.

    Subclasses set `code` (machine-readable, stable) and `status` (HTTP).
    Raising one aborts the request with no side effect: store mutations
    inside the failing transaction are discarded.
    """
    code = "INTERNAL_ERROR"
    status = 500

    def __init__(self, message: str | None = None, *, code: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(ApiError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"
    status = 400


class AuthRequiredError(ApiError):
    """Authentication required."""
    code = "AUTH_REQUIRED"
    status = 401


class AuthFailedError(ApiError):
    """Invalid PIN."""
    code = "AUTH_FAILED"
    status = 401


class NoPinSetError(AuthFailedError):
    """No PIN has been configured yet."""
    code = "NO_PIN_SET"


class AuthLockedError(ApiError):
    """PIN login temporarily locked due to too many failed attempts."""
    code = "AUTH_LOCKED"
    status = 429

    def __init__(self, retry_after_seconds: int, message: str | None = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["locked"] = True
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class AuthForbiddenError(ApiError):
    """Insufficient scope for this action."""
    code = "AUTH_FORBIDDEN"
    status = 403


class SetupDeniedError(ApiError):
    """PIN setup denied."""
    code = "AUTH_SETUP_DENIED"
    status = 403


class NotFoundError(ApiError):
    """Resource not found."""
    code = "NOT_FOUND"
    status = 404


class UnknownDepartmentError(NotFoundError):
    """Unknown department."""


class ConflictError(ApiError):
    """409-level business rule conflict."""
    code = "CONFLICT"
    status = 409


class SlotTakenError(ConflictError):
    """This slot already holds a PIN."""
    code = "SLOT_TAKEN"


class CapacityReachedError(ConflictError):
    """Maximum number of PINs reached."""
    code = "CAPACITY_REACHED"


class DuplicatePinError(ConflictError):
    """This PIN is already in use."""
    code = "PIN_ALREADY_EXISTS"


class StaleWriteError(ConflictError):
    """The data file changed since it was read; retry the request."""


class PersistenceError(ApiError):
    """Failed to save data."""
    code = "PERSISTENCE_ERROR"
    status = 500


def validate_pin_format(pin: Any) -> str:
    """
    Return the PIN as a trimmed string or raise ValidationError.

    Accepts strings and plain integers (a JSON client may send 1234 unquoted).
    Integers are not zero-padded: 123 is rejected rather than becoming "0123".
    """
    if isinstance(pin, bool) or pin is None:
        raise ValidationError("PIN must be exactly 4 digits")
    if isinstance(pin, int):
        pin = str(pin)
    if not isinstance(pin, str):
        raise ValidationError("PIN must be exactly 4 digits")
    pin = pin.strip()
    if not PIN_PATTERN.fullmatch(pin):
        raise ValidationError("PIN must be exactly 4 digits")
    return pin


def coerce_quantity(value: Any) -> str | None:
    """
    Normalize one order value to a trimmed string.

    - None -> ""
    - str -> stripped
    - bool -> "true" / "false"
    - int / float -> decimal text ("6", "2.5"); integral floats lose the ".0"
    - dict / list / anything else -> None (caller drops the key)
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return None


def normalize_fields(mapping: Any) -> dict[str, str]:
    """Flatten a mapping of item name -> quantity into str -> str."""
    if not isinstance(mapping, dict):
        return {}
    out: dict[str, str] = {}
    for key, value in mapping.items():
        coerced = coerce_quantity(value)
        if coerced is None:
            continue
        out[str(key)] = coerced
    return out


def extract_fields(payload: Any) -> dict[str, str]:
    """
    Extract order fields from the shapes the front-end pages send:

    - {"fields": {...}}
    - {"fields": {"fields": {...}}}
    - {...} (bare mapping)
    """
    if not isinstance(payload, dict):
        return {}

    inner = payload.get("fields")
    if isinstance(inner, dict):
        nested = inner.get("fields")
        if isinstance(nested, dict):
            return normalize_fields(nested)
        return normalize_fields(inner)

    return normalize_fields(payload)
