from __future__ import annotations

from typing import Any

from .models import OPERATING_MODES, CHECKOUT_PAYMENT_METHODS


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999


class TillError(Exception):
    """Base class for errors surfaced to the operator as a short message."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(TillError):
    """400-level input problem. Raised before anything is written."""
    status_code = 400


class PermissionDeniedError(TillError):
    """403-level: actor lacks the capability for this operation."""
    status_code = 403


class NotFoundError(TillError):
    """404-level: unknown session, product, location or customer."""
    status_code = 404


class ConflictError(TillError):
    """409-level business rule conflict (e.g., session already open)."""
    status_code = 409


class PersistenceError(TillError):
    """503-level: the store rejected a write; nothing was applied."""
    status_code = 503


def parse_int(value: Any, field: str) -> int:
    """
    Strictly coerce a JSON/CLI value to int.

    Rejects bools, floats, blank strings, decimals and scientific notation
    so "12.5" or "1e3" never silently become money or quantities.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    # bool is a subclass of int
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def parse_cents(value: Any, field: str) -> int:
    """Money in cents: integer, >= 0, bounded."""
    cents = parse_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS} ({MAX_AMOUNT_CENTS / 100:,.2f})")
    return cents


def parse_quantity(value: Any, field: str = "quantity", *, allow_zero: bool = False) -> int:
    qty = parse_int(value, field)
    if allow_zero:
        if qty < 0:
            raise ValidationError(f"{field} cannot be negative")
    elif qty <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return qty


def parse_choice(value: Any, field: str, choices: tuple[str, ...], *, upper: bool = True) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    normalized = value.strip().upper() if upper else value.strip().lower()
    if normalized not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return normalized


def parse_operating_mode(value: Any) -> str:
    return parse_choice(value, "operating_mode", OPERATING_MODES)


def parse_payment_method(value: Any) -> str:
    return parse_choice(value, "payment_method", CHECKOUT_PAYMENT_METHODS, upper=False)
