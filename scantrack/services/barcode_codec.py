"""
ScanTrack — Production Scan Reconciliation
Barcode Codec.

Unit/operation barcodes have the form::

    <work order key>-<UUU>-<OO>-<CCCC>

    UUU   unit number, zero-padded to 3 digits (1..999)
    OO    operation sequence, zero-padded to 2 digits (1..99)
    CCCC  4 uppercase hex digits derived from ``<key>-<UUU>-<OO>``

The key may itself contain hyphens, so the string is parsed from the right.
Labels printed by earlier releases use exactly this checksum; it must not
change.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from scantrack.core.exceptions import BarcodeFormatError, ChecksumError

BARCODE_RE = re.compile(r"^([A-Z0-9-]+)-(\d{3})-(\d{2})-([A-F0-9]{4})$")
KEY_RE = re.compile(r"^[A-Z0-9-]+$")

MAX_UNIT = 999
MAX_OPERATION = 99


@dataclass(frozen=True)
class BarcodeParts:
    work_order_key: str
    unit: int
    operation: int
    checksum: str

    @property
    def base_id(self) -> str:
        return format_base(self.work_order_key, self.unit, self.operation)

    def to_dict(self) -> dict:
        return {
            "work_order_key": self.work_order_key,
            "unit": self.unit,
            "operation": self.operation,
            "checksum": self.checksum,
        }


def format_base(key: str, unit: int, operation: int) -> str:
    return f"{key}-{unit:03d}-{operation:02d}"


def checksum(base_id: str) -> str:
    """Return the 4-digit checksum of ``base_id``.

    31-multiplier rolling hash wrapped to a signed 32-bit integer. The
    absolute value is rendered as uppercase hex and the *leading* four
    digits are kept (left-padded with ``0`` when shorter).
    """
    h = 0
    for ch in base_id:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return format(abs(h), "X")[:4].rjust(4, "0")


def parse(barcode_id: str) -> BarcodeParts:
    """Structural parse only. Raises BarcodeFormatError; checksum not verified."""
    match = BARCODE_RE.match(barcode_id or "")
    if not match:
        raise BarcodeFormatError(barcode_id, "Invalid barcode format")
    key, unit_str, op_str, check = match.groups()
    return BarcodeParts(
        work_order_key=key,
        unit=int(unit_str),
        operation=int(op_str),
        checksum=check,
    )


def verify(parts: BarcodeParts, barcode_id: str = "") -> None:
    """Raise ChecksumError when ``parts.checksum`` does not match."""
    expected = checksum(parts.base_id)
    if expected != parts.checksum:
        raise ChecksumError(barcode_id or f"{parts.base_id}-{parts.checksum}", expected, parts.checksum)


def decode(barcode_id: str) -> BarcodeParts:
    """Parse and verify a barcode.

    Raises:
        BarcodeFormatError: the string is not ``<key>-UUU-OO-CCCC``.
        ChecksumError: the structure is fine but the checksum is wrong.
    """
    parts = parse(barcode_id)
    verify(parts, barcode_id)
    return parts


def encode(key: str, unit: int, operation: int) -> str:
    """Build the barcode for ``unit`` at operation ``operation`` of work order ``key``."""
    if not key or not KEY_RE.match(key):
        raise ValueError(f"Invalid work order key: {key!r}")
    if not 1 <= unit <= MAX_UNIT:
        raise ValueError(f"Unit must be between 1 and {MAX_UNIT}, got {unit}")
    if not 1 <= operation <= MAX_OPERATION:
        raise ValueError(f"Operation must be between 1 and {MAX_OPERATION}, got {operation}")
    base = format_base(key, unit, operation)
    return f"{base}-{checksum(base)}"


def generate_labels(key: str, quantity: int, operations: list[dict] | None = None) -> list[dict]:
    """Every barcode of a work order, unit-major.

    ``operations`` is a list of dicts in sequence order; ``operation_type``
    and ``machine_name`` are copied onto each label when present.
    """
    operations = operations or []
    labels = []
    for unit in range(1, quantity + 1):
        for seq, op in enumerate(operations, start=1):
            labels.append({
                "barcode_id": encode(key, unit, seq),
                "unit": unit,
                "operation": seq,
                "operation_type": op.get("operation_type") or "Unknown",
                "machine_name": op.get("machine_name") or "Not assigned",
            })
    return labels
