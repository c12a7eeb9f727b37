# hms/routers/records.py
from typing import Optional

from fastapi import APIRouter, Depends

from hms.db import get_database
from hms.models.records import create_invoice, create_lab_order, get_patient, register_patient
from hms.schemas.records_schema import (
    AllocateRequest,
    AllocateResponse,
    InvoiceCreate,
    LabOrderCreate,
    PatientCreate,
)
from hms.services.sequence_allocator import allocate_id

router = APIRouter(tags=["Records"])


@router.post("/identifiers/{scope}", response_model=AllocateResponse)
def allocate_identifier(scope: str, payload: Optional[AllocateRequest] = None, db=Depends(get_database)):
    """Mint a standalone ID (patients, invoices, lab_orders, admissions)."""
    period = payload.period if payload else None
    return AllocateResponse(id=allocate_id(db, scope, period))


@router.post("/patients", status_code=201)
def create_patient(info: PatientCreate, db=Depends(get_database)):
    return register_patient(db, info)


@router.get("/patients/{patient_id}")
def fetch_patient(patient_id: str, db=Depends(get_database)):
    return get_patient(db, patient_id)


@router.post("/invoices", status_code=201)
def create_invoice_route(data: InvoiceCreate, db=Depends(get_database)):
    return create_invoice(db, data)


@router.post("/lab/orders", status_code=201)
def create_lab_order_route(data: LabOrderCreate, db=Depends(get_database)):
    return create_lab_order(db, data)
