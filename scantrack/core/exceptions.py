"""
Application-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere. The barcode errors never
leave a sync pass: the validator turns them into invalid-scan records.

Usage:
    from scantrack.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="WorkOrder", resource_id=42)
    raise ValidationError("quantity must be positive", details={"quantity": "..."})
"""


class NotFoundError(Exception):
    """No row for ``resource`` under ``resource_id`` (HTTP 404)."""

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        label = resource if resource_id is None else f"{resource} id={resource_id}"
        super().__init__(f"{label} not found")


class ValidationError(Exception):
    """Well-formed input that breaks a domain rule (HTTP 422).

    ``details`` carries the per-field breakdown returned in the error body.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


# ── Barcode / scan classification ────────────────────────────────────────────


class BarcodeDecodeError(ValueError):
    """A scanned string is not a usable barcode (classified ``invalid_format``)."""

    def __init__(self, barcode_id: str, message: str) -> None:
        self.barcode_id = barcode_id
        super().__init__(message)


class BarcodeFormatError(BarcodeDecodeError):
    """The string does not match ``<key>-UUU-OO-CCCC``."""


class ChecksumError(BarcodeDecodeError):
    """The structure is valid but the checksum field does not match."""

    def __init__(self, barcode_id: str, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(barcode_id, f"Checksum mismatch: expected {expected}, got {actual}")


class QuantityError(ValueError):
    """A decoded unit number lies outside [1, quantity] (``exceeds_quantity``)."""

    def __init__(self, unit: int, quantity: int) -> None:
        self.unit = unit
        self.quantity = quantity
        super().__init__(f"Unit {unit} exceeds total quantity ({quantity})")
