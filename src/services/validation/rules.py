"""Pure validation rules.

Nothing here performs I/O; every function is deterministic for its inputs,
which keeps the orchestrator's remote and database work apart from the
arithmetic it relies on.
"""

import random
import re
from datetime import date, timedelta
from typing import Any, Final

from src.core.constants import AMOUNT_TOLERANCE, SEVERITY_ERROR, SEVERITY_WARNING
from src.infrastructure.afip.constants import INVOICE_TYPE_CODES
from src.services.validation.models import (
    AggregateResult,
    OverallStatus,
    TaxIssue,
    ValidationResult,
)

CUIT_LENGTH: Final[int] = 11
CAE_LENGTH: Final[int] = 14
CUIT_MULTIPLIERS: Final[tuple[int, ...]] = (5, 4, 3, 2, 7, 6, 5, 4, 3, 2)

# Validity assumed for a CAE when the registry cannot be consulted
ESTIMATED_CAE_VALIDITY_DAYS: Final[int] = 60

_NON_DIGITS = re.compile(r"\D")
_INVOICE_NUMBER = re.compile(r"^\s*(\d{1,5})\s*-\s*(\d{1,8})\s*$")


def normalize_digits(value: str | int | None) -> str:
    """Strip every non-digit character.

    Examples:
        >>> normalize_digits("20-12345678-6")
        '20123456786'
    """
    if value is None:
        return ""
    return _NON_DIGITS.sub("", str(value))


def is_valid_cuit_format(cuit: str) -> bool:
    """Whether a normalized CUIT has exactly 11 digits."""
    return len(cuit) == CUIT_LENGTH and cuit.isdigit()


def is_valid_cae_format(cae: str) -> bool:
    """Whether a CAE has exactly 14 digits."""
    return len(cae) == CAE_LENGTH and cae.isdigit()


def validate_cuit_checksum(cuit: str) -> bool:
    """Verify the check digit of a CUIT (modulo 11).

    The first ten digits are weighted with 5,4,3,2,7,6,5,4,3,2. With ``r`` the
    weighted sum modulo 11, the check digit is ``r`` when ``r < 2`` and
    ``11 - r`` otherwise.

    Args:
        cuit: CUIT with or without separators.

    Returns:
        bool: True when the last digit matches the computed check digit.

    Examples:
        >>> validate_cuit_checksum("20-12345678-6")
        True
        >>> validate_cuit_checksum("20123456789")
        False
    """
    digits = normalize_digits(cuit)
    if not is_valid_cuit_format(digits):
        return False
    remainder = (
        sum(int(d) * m for d, m in zip(digits[:10], CUIT_MULTIPLIERS, strict=True))
        % 11
    )
    check = remainder if remainder < 2 else 11 - remainder
    return check == int(digits[10])


def parse_invoice_number(invoice_number: str | None) -> tuple[int, int] | None:
    """Split an invoice number into point of sale and sequence number.

    Examples:
        >>> parse_invoice_number("0001-00000001")
        (1, 1)
        >>> parse_invoice_number("A-1") is None
        True
    """
    if not invoice_number:
        return None
    match = _INVOICE_NUMBER.match(invoice_number)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def resolve_invoice_type(invoice_type: str | int | None) -> int | None:
    """Resolve an invoice type given as a WSFEv1 code or a letter.

    Examples:
        >>> resolve_invoice_type("A")
        1
        >>> resolve_invoice_type("6")
        6
    """
    if invoice_type is None:
        return None
    if isinstance(invoice_type, int):
        return invoice_type
    text = invoice_type.strip().upper()
    if text.isdigit():
        return int(text)
    return INVOICE_TYPE_CODES.get(text)


def is_within_range(number: int | None, range_from: int, range_to: int) -> bool:
    """Whether an invoice number falls inside an authorized range."""
    return number is not None and range_from <= number <= range_to


def estimate_cae_expiration(invoice_date: date | None) -> date | None:
    """Estimate the expiration of a CAE from the invoice date."""
    if invoice_date is None:
        return None
    return invoice_date + timedelta(days=ESTIMATED_CAE_VALIDITY_DAYS)


def check_iva_consistency(
    subtotal: float | None, iva: float | None, total: float | None
) -> dict[str, Any]:
    """Check that subtotal plus VAT matches the total within one cent.

    Returns:
        dict[str, Any]: ``valid`` and ``message``, plus ``details`` when both
            subtotal and total were given.
    """
    if not subtotal or not total:
        return {"valid": True, "message": "Insufficient data for IVA check"}

    calculated_total = float(subtotal) + float(iva or 0)
    actual_total = float(total)
    difference = abs(calculated_total - actual_total)
    valid = difference < AMOUNT_TOLERANCE
    message = (
        "IVA consistente"
        if valid
        else (
            f"Inconsistencia IVA: Subtotal + IVA ({calculated_total:.2f}) "
            f"!= Total ({actual_total:.2f})"
        )
    )
    return {
        "valid": valid,
        "message": message,
        "details": {
            "subtotal": float(subtotal),
            "iva": float(iva or 0),
            "calculatedTotal": calculated_total,
            "actualTotal": actual_total,
            "difference": difference,
        },
    }


def check_tax_calculations(_document: Any) -> dict[str, Any]:  # noqa: ANN401
    """Extension point for per-rate tax calculation checks."""
    return {"valid": True, "message": "Tax calculations valid"}


def check_document_type(_document: Any) -> dict[str, Any]:  # noqa: ANN401
    """Extension point for document type versus operation checks."""
    return {"valid": True, "message": "Document type consistent"}


def collect_tax_issues(
    subtotal: float | None,
    iva: float | None,
    total: float | None,
    document: Any = None,  # noqa: ANN401
) -> list[TaxIssue]:
    """Run every tax consistency rule and collect the failed ones."""
    issues: list[TaxIssue] = []

    iva_check = check_iva_consistency(subtotal, iva, total)
    if not iva_check["valid"]:
        issues.append(
            TaxIssue(
                type="iva_consistency",
                message=iva_check["message"],
                severity="warning",
                details=iva_check["details"],
            )
        )

    calculation_check = check_tax_calculations(document)
    if not calculation_check["valid"]:
        issues.append(
            TaxIssue(
                type="tax_calculations",
                message=calculation_check["message"],
                severity="error",
                details=calculation_check.get("details", {}),
            )
        )

    type_check = check_document_type(document)
    if not type_check["valid"]:
        issues.append(
            TaxIssue(
                type="document_type",
                message=type_check["message"],
                severity="warning",
                details=type_check.get("details", {}),
            )
        )
    return issues


def _is_blocking(result: ValidationResult | None) -> bool:
    return (
        result is not None
        and not result.valid
        and not result.from_cache
        and result.severity == SEVERITY_ERROR
    )


def aggregate_overall(result: AggregateResult) -> OverallStatus:
    """Derive the overall verdict from the sub-results and errors.

    Rules, first match wins:

    1. A non-cached CUIT or CAE result that is invalid with severity error
       makes the document invalid.
    2. Any error entry with severity error makes it invalid.
    3. Any warning (entry or sub-result), a duplicate, or tax issues make it
       valid with warnings.
    4. Otherwise it is valid.

    The verdict depends only on the four sub-results and the error list, not
    on the order in which they completed.
    """
    if _is_blocking(result.cuit_validation) or _is_blocking(result.cae_validation):
        return "invalid"

    if any(entry.severity == SEVERITY_ERROR for entry in result.errors):
        return "invalid"

    has_warning = any(
        entry.severity == SEVERITY_WARNING for entry in result.errors
    ) or any(
        sub is not None and sub.severity == SEVERITY_WARNING
        for sub in result.sub_results().values()
    )
    is_duplicate = bool(result.duplicate_check and result.duplicate_check.is_duplicate)
    has_tax_issues = bool(result.tax_consistency and result.tax_consistency.issues)

    if has_warning or is_duplicate or has_tax_issues:
        return "valid_with_warnings"
    return "valid"


def backoff_delay_ms(
    attempts: int,
    base_delay_ms: int = 1000,
    max_delay_ms: int = 30000,
    jitter_ratio: float = 0.0,
) -> int:
    """Delay before the next retry, doubling per attempt up to a cap.

    Args:
        attempts: Attempts made so far.
        base_delay_ms: Delay after the first failure.
        max_delay_ms: Upper bound of the delay.
        jitter_ratio: Fraction of the delay randomly added or removed.

    Returns:
        int: ``min(base_delay_ms * 2**attempts, max_delay_ms)``, with jitter
            applied when ``jitter_ratio`` is positive.

    Examples:
        >>> backoff_delay_ms(0), backoff_delay_ms(2), backoff_delay_ms(10)
        (1000, 4000, 30000)
    """
    delay = min(base_delay_ms * 2**attempts, max_delay_ms)
    if jitter_ratio > 0:
        spread = delay * jitter_ratio
        delay = max(0, round(delay + random.uniform(-spread, spread)))  # noqa: S311
    return int(delay)
