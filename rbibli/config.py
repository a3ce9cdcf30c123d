# rbibli/config.py
import os
from typing import NamedTuple

from rbibli.errors import ValidationError

DEFAULT_DATABASE_URL = "sqlite:///rbibli.db"
DEFAULT_LOAN_DAYS = 21        # Loan window for borrowers without a group
DEFAULT_MAX_RENEWALS = 1      # Renewals allowed for borrowers without a group
DEFAULT_MAX_COVER_BYTES = 5 * 1024 * 1024


class LoanPolicy(NamedTuple):
    max_loan_days: int
    max_renewals: int


def validate_policy_values(max_loan_days, max_renewals) -> None:
    """Reject negative or non-integer policy values.

    Raises:
        ValidationError: If either value is not an int >= 0
    """
    for field, value in (("max_loan_days", max_loan_days), ("max_renewals", max_renewals)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{field} must be an integer, got {value!r}")
        if value < 0:
            raise ValidationError(f"{field} must be >= 0, got {value}")


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Environment variable {name} must be an integer, got {raw!r}")


def database_url() -> str:
    """Connection string from DATABASE_URL, falling back to a local SQLite file"""
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def default_loan_policy() -> LoanPolicy:
    """Policy applied to borrowers that do not belong to a group.

    Read from RBIBLI_DEFAULT_LOAN_DAYS and RBIBLI_DEFAULT_MAX_RENEWALS on every
    call so tests and deployments can override it without reloading modules.
    """
    policy = LoanPolicy(
        max_loan_days=_int_from_env("RBIBLI_DEFAULT_LOAN_DAYS", DEFAULT_LOAN_DAYS),
        max_renewals=_int_from_env("RBIBLI_DEFAULT_MAX_RENEWALS", DEFAULT_MAX_RENEWALS),
    )
    validate_policy_values(*policy)
    return policy


def max_cover_bytes() -> int:
    return _int_from_env("RBIBLI_MAX_COVER_BYTES", DEFAULT_MAX_COVER_BYTES)
