# hms/models/records.py
"""
Records that are stored under an identifier minted by the SequenceAllocator.
Each insert is the allocator's paired write, so with transactions enabled
the counter bump and the record commit together.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from hms.config import INVOICES_COLLECTION, LAB_ORDERS_COLLECTION, PATIENTS_COLLECTION
from hms.errors import NotFound
from hms.schemas.records_schema import InvoiceCreate, LabOrderCreate, PatientCreate
from hms.services.sequence_allocator import SequenceAllocator, session_kw
from hms.services.utils.id_formats import (
    INVOICES,
    LAB_ORDERS,
    PATIENTS,
    invoice_id_format,
    lab_order_id_format,
    monthly_period,
    patient_id_format,
    yearly_period,
)


def _insert_under_id(db, collection: str, doc: Dict[str, Any]):
    """Build the allocator's on_issue hook that stores `doc` under the new ID."""
    def _write(identifier: str, session) -> None:
        doc["_id"] = identifier
        db[collection].insert_one(dict(doc), **session_kw(session))
    return _write


def _public(doc: Dict[str, Any]) -> Dict[str, Any]:
    # Make response JSON-safe
    out = dict(doc)
    out["id"] = out.pop("_id")
    return out


def register_patient(db, info: PatientCreate, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    data = info.model_dump(mode="json")
    doc = {**data, "name": info.full_name, "created_at": now}
    SequenceAllocator(db).allocate(
        PATIENTS, monthly_period(now), patient_id_format,
        on_issue=_insert_under_id(db, PATIENTS_COLLECTION, doc),
    )
    return _public(doc)


def get_patient(db, patient_id: str) -> Dict[str, Any]:
    doc = db[PATIENTS_COLLECTION].find_one({"_id": patient_id})
    if not doc:
        raise NotFound(f"Patient {patient_id} not found")
    return _public(doc)


def create_invoice(db, data: InvoiceCreate, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    today = now.date()
    invoice_date: date = data.invoice_date or today
    doc = {
        **data.model_dump(mode="json"),
        "status": data.status or "Pending Payment",
        "invoice_date": invoice_date.isoformat(),
        "due_date": (data.due_date or today + timedelta(days=30)).isoformat(),
        "created_at": now,
        "updated_at": now,
    }
    SequenceAllocator(db).allocate(
        INVOICES, yearly_period(now), invoice_id_format,
        on_issue=_insert_under_id(db, INVOICES_COLLECTION, doc),
    )
    return _public(doc)


def create_lab_order(db, data: LabOrderCreate, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    doc = {
        **data.model_dump(mode="json"),
        "status": data.status or "Ordered",
        "order_date": now,
        "created_at": now,
        "updated_at": now,
    }
    SequenceAllocator(db).allocate(
        LAB_ORDERS, monthly_period(now), lab_order_id_format,
        on_issue=_insert_under_id(db, LAB_ORDERS_COLLECTION, doc),
    )
    return _public(doc)
