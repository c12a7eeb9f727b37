# hms/schemas/ward_schema.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class BedStatus(str, Enum):
    AVAILABLE = "Available"
    OCCUPIED = "Occupied"
    NEEDS_CLEANING = "Needs Cleaning"
    MAINTENANCE = "Maintenance"


class PatientRef(BaseModel):
    """Denormalized patient reference carried by an occupied bed or an admission."""
    id: str = Field(..., min_length=1, example="PT2024-08-0001")
    name: str = Field(..., min_length=1, example="Jane Doe")


class Bed(BaseModel):
    bed_id: str
    label: str
    status: BedStatus = BedStatus.AVAILABLE
    patient: Optional[PatientRef] = None

    @model_validator(mode="after")
    def _patient_iff_occupied(self) -> "Bed":
        if (self.status == BedStatus.OCCUPIED) != (self.patient is not None):
            raise ValueError("a bed carries a patient if and only if it is Occupied")
        return self


class Ward(BaseModel):
    ward_id: str
    name: str
    description: str = ""
    beds: List[Bed] = Field(default_factory=list)
    version: int = 0

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Ward":
        return cls(
            ward_id=doc["_id"],
            name=doc["name"],
            description=doc.get("description", ""),
            beds=[Bed(**b) for b in doc.get("beds", [])],
            version=doc.get("version", 0),
        )


# ---------- Request bodies ----------
class WardCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, example="General Ward A")
    description: str = Field("", max_length=500)
    bed_count: int = Field(0, ge=0, example=10)


class WardUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    bed_count: Optional[int] = Field(None, ge=0)


class BedCreate(BaseModel):
    label: str = Field(..., min_length=1, max_length=50, example="Bed 12")


class BedStatusUpdate(BaseModel):
    status: BedStatus
