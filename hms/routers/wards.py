# hms/routers/wards.py
from typing import List

from fastapi import APIRouter, Depends, Response

from hms.db import get_database
from hms.schemas.ward_schema import Bed, BedCreate, BedStatusUpdate, Ward, WardCreate, WardUpdate
from hms.services.bed_registry import BedRegistry

router = APIRouter(prefix="/wards", tags=["Wards"])


def get_registry(db=Depends(get_database)) -> BedRegistry:
    return BedRegistry(db)


@router.get("", response_model=List[Ward])
def list_wards(registry: BedRegistry = Depends(get_registry)):
    return registry.list_wards()


@router.post("", response_model=Ward, status_code=201)
def create_ward(payload: WardCreate, registry: BedRegistry = Depends(get_registry)):
    return registry.create_ward(payload.name, payload.description, payload.bed_count)


@router.get("/occupancy")
def occupancy(registry: BedRegistry = Depends(get_registry)):
    """Bed counts per status across all wards."""
    return registry.occupancy_summary()


@router.get("/{ward_id}", response_model=Ward)
def get_ward(ward_id: str, registry: BedRegistry = Depends(get_registry)):
    return registry.get_ward(ward_id)


@router.put("/{ward_id}", response_model=Ward)
def update_ward(ward_id: str, payload: WardUpdate, registry: BedRegistry = Depends(get_registry)):
    return registry.update_ward(ward_id, payload.name, payload.description, payload.bed_count)


@router.delete("/{ward_id}", status_code=204)
def delete_ward(ward_id: str, registry: BedRegistry = Depends(get_registry)):
    registry.delete_ward(ward_id)
    return Response(status_code=204)


@router.post("/{ward_id}/beds", response_model=Ward, status_code=201)
def add_bed(ward_id: str, payload: BedCreate, registry: BedRegistry = Depends(get_registry)):
    return registry.add_bed(ward_id, payload.label)


@router.delete("/{ward_id}/beds/{bed_id}", response_model=Ward)
def delete_bed(ward_id: str, bed_id: str, registry: BedRegistry = Depends(get_registry)):
    return registry.delete_bed(ward_id, bed_id)


@router.put("/{ward_id}/beds/{bed_id}/status", response_model=Bed)
def set_bed_status(ward_id: str, bed_id: str, payload: BedStatusUpdate,
                   registry: BedRegistry = Depends(get_registry)):
    """Administrative status change, e.g. Needs Cleaning -> Available once the bed is cleaned."""
    return registry.set_bed_status(ward_id, bed_id, payload.status)
