# hms/routers/admissions.py
from typing import List, Optional

from fastapi import APIRouter, Depends

from hms.db import get_database
from hms.schemas.admission_schema import (
    Admission,
    AdmissionStatus,
    AdmitRequest,
    DischargeSummary,
    TransferRequest,
)
from hms.services.admission_orchestrator import AdmissionOrchestrator

router = APIRouter(prefix="/admissions", tags=["Admissions"])


def get_orchestrator(db=Depends(get_database)) -> AdmissionOrchestrator:
    return AdmissionOrchestrator(db)


@router.post("", response_model=Admission, status_code=201)
def admit_patient(payload: AdmitRequest, orch: AdmissionOrchestrator = Depends(get_orchestrator)):
    return orch.admit(payload.patient_id, payload.ward_id, payload.bed_id, payload)


@router.get("", response_model=List[Admission])
def list_admissions(status: Optional[AdmissionStatus] = None, patient_id: Optional[str] = None,
                    orch: AdmissionOrchestrator = Depends(get_orchestrator)):
    return orch.list_admissions(status=status, patient_id=patient_id)


@router.get("/{admission_id}", response_model=Admission)
def get_admission(admission_id: str, orch: AdmissionOrchestrator = Depends(get_orchestrator)):
    return orch.get_admission(admission_id)


@router.post("/{admission_id}/transfer", response_model=Admission)
def transfer_patient(admission_id: str, payload: TransferRequest,
                     orch: AdmissionOrchestrator = Depends(get_orchestrator)):
    return orch.transfer(admission_id, payload.ward_id, payload.bed_id, payload.reason)


@router.post("/{admission_id}/discharge", response_model=Admission)
def discharge_patient(admission_id: str, summary: Optional[DischargeSummary] = None,
                      orch: AdmissionOrchestrator = Depends(get_orchestrator)):
    """Idempotent: discharging an already discharged admission returns it unchanged."""
    return orch.discharge(admission_id, summary)
