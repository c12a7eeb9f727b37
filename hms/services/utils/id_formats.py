# hms/services/utils/id_formats.py
from __future__ import annotations

import re
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from hms.errors import InvalidRequest

Formatter = Callable[[str, int], str]

PATIENTS = "patients"
INVOICES = "invoices"
LAB_ORDERS = "lab_orders"
ADMISSIONS = "admissions"


def _now() -> datetime:
    return datetime.utcnow()


def monthly_period(when: Optional[datetime] = None) -> str:
    """'2024-08' style period label."""
    return (when or _now()).strftime("%Y-%m")


def yearly_period(when: Optional[datetime] = None) -> str:
    return (when or _now()).strftime("%Y")


def patient_id_format(period: str, seq: int) -> str:
    """
    Monthly patient IDs like:
      PT2024-08-0001
    """
    return f"PT{period}-{str(seq).zfill(4)}"


def invoice_id_format(period: str, seq: int) -> str:
    """
    Yearly invoice IDs like:
      INV2024-00001
    """
    return f"INV{period}-{str(seq).zfill(5)}"


def lab_order_id_format(period: str, seq: int) -> str:
    """
    Monthly lab order IDs like:
      LAB2024-08-00001
    """
    return f"LAB{period}-{str(seq).zfill(5)}"


def admission_id_format(period: str, seq: int) -> str:
    return f"ADM{period}-{str(seq).zfill(5)}"


# scope -> (period function, formatter)
SCOPES: Dict[str, Tuple[Callable[[Optional[datetime]], str], Formatter]] = {
    PATIENTS: (monthly_period, patient_id_format),
    INVOICES: (yearly_period, invoice_id_format),
    LAB_ORDERS: (monthly_period, lab_order_id_format),
    ADMISSIONS: (yearly_period, admission_id_format),
}

_MONTHLY = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_YEARLY = re.compile(r"^\d{4}$")


def check_period(scope: str, period: str) -> None:
    """Registered scopes count per month or per year; reject other labels."""
    period_fn, _ = SCOPES[scope]
    pattern = _MONTHLY if period_fn is monthly_period else _YEARLY
    if not pattern.match(period):
        raise InvalidRequest(f"Period {period!r} does not fit scope {scope}")
