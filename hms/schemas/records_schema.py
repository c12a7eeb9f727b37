# hms/schemas/records_schema.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class PatientCreate(BaseModel):
    first_name: str = Field(..., min_length=1, example="Jane")
    last_name: str = Field(..., min_length=1, example="Doe")
    gender: Optional[str] = Field(None, example="Female")
    date_of_birth: Optional[date] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    allergies: List[str] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class LineItem(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0)
    unit_price: float = Field(..., ge=0)
    amount: float = Field(..., ge=0)


class InvoiceCreate(BaseModel):
    patient_id: str = Field(..., min_length=1)
    patient_name: str = Field(..., min_length=1)
    total_amount: float = Field(..., gt=0)
    line_items: List[LineItem] = Field(..., min_length=1)
    status: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    amount_paid: float = Field(0, ge=0)
    tax_rate: float = Field(0, ge=0)
    tax_amount: float = Field(0, ge=0)


class LabOrderCreate(BaseModel):
    patient_id: str = Field(..., min_length=1)
    patient_name: str = Field(..., min_length=1)
    tests: List[str] = Field(..., min_length=1)
    ordering_doctor: Optional[str] = None
    invoice_id: Optional[str] = None
    status: Optional[str] = None


class AllocateRequest(BaseModel):
    period: Optional[str] = Field(None, example="2024-08")


class AllocateResponse(BaseModel):
    id: str
