# hms/schemas/admission_schema.py
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from hms.schemas.ward_schema import PatientRef


class AdmissionStatus(str, Enum):
    ADMITTED = "Admitted"
    DISCHARGED = "Discharged"


class AdmissionDetails(BaseModel):
    admission_date: Optional[date] = None
    admitting_doctor: str = Field(..., min_length=1, example="Dr. Rao")
    reason: str = Field(..., min_length=1, max_length=1000, example="Community-acquired pneumonia")


class AdmitRequest(AdmissionDetails):
    patient_id: str = Field(..., min_length=1)
    ward_id: str = Field(..., min_length=1)
    bed_id: str = Field(..., min_length=1)


class TransferRequest(BaseModel):
    ward_id: str = Field(..., min_length=1)
    bed_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=1000)


class DischargeSummary(BaseModel):
    discharge_date: Optional[date] = None
    diagnosis: Optional[str] = Field(None, max_length=500)
    hospital_course: Optional[str] = Field(None, max_length=2000)
    condition_at_discharge: Optional[str] = Field(None, max_length=1000)
    medications: Optional[str] = Field(None, max_length=2000)
    follow_up_instructions: Optional[str] = Field(None, max_length=2000)
    physician_responsible: Optional[str] = None


class TransferRecord(BaseModel):
    from_ward: str
    from_bed: str
    to_ward: str
    to_bed: str
    reason: Optional[str] = None
    transferred_at: datetime


class Admission(BaseModel):
    admission_id: str
    patient: PatientRef
    admission_date: date
    ward: str
    bed: str
    admitting_doctor: str
    reason: str
    status: AdmissionStatus = AdmissionStatus.ADMITTED
    discharge_date: Optional[date] = None
    discharge_summary: Optional[DischargeSummary] = None
    transfers: List[TransferRecord] = Field(default_factory=list)

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Admission":
        data = {k: v for k, v in doc.items() if k not in ("_id", "created_at", "updated_at")}
        return cls(admission_id=doc["_id"], **data)
