# hms/services/bed_registry.py
"""
Wards, their beds, and the per-bed occupancy state machine.

    Available -> Occupied -> Needs Cleaning | Maintenance -> Available

A ward is one document with its beds embedded as an ordered list. Every
change loads the ward, mutates a copy in Python and writes the whole
document back, but only if the ward's `version` is still the one that was
read. Losing that race raises Conflict, so two reservations can never both
succeed on the same bed.
"""
from __future__ import annotations

import copy
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from hms.config import WARDS_COLLECTION
from hms.errors import BedUnavailable, Conflict, InvalidRequest, InvalidState, NotFound
from hms.schemas.ward_schema import Bed, BedStatus, PatientRef, Ward

logger = logging.getLogger(__name__)

# Where a bed may go when its patient leaves; never straight back to Available
RELEASE_STATES = (BedStatus.NEEDS_CLEANING, BedStatus.MAINTENANCE)

# Order in which beds are dropped when a ward shrinks
_SHRINK_PRIORITY = (BedStatus.AVAILABLE, BedStatus.NEEDS_CLEANING, BedStatus.MAINTENANCE)


def is_occupied(bed: Dict[str, Any]) -> bool:
    """The one occupancy predicate used by transitions and admin refusals alike."""
    return bed.get("status") == BedStatus.OCCUPIED.value


def _key(text: str) -> str:
    return text.strip().lower()


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:8].upper()}"


def _new_bed(label: str) -> Dict[str, Any]:
    return {
        "bed_id": _new_id("BED"),
        "label": label,
        "status": BedStatus.AVAILABLE.value,
        "patient": None,
    }


def _bed_number(label: str) -> int:
    digits = re.sub(r"[^0-9]", "", label)
    return int(digits) if digits else 0


def _bed_index(doc: Dict[str, Any], bed_id: str) -> int:
    for i, bed in enumerate(doc.get("beds", [])):
        if bed["bed_id"] == bed_id:
            return i
    raise NotFound(f'Bed {bed_id} not found in ward "{doc["name"]}"')


def _holder(bed: Dict[str, Any]) -> Optional[str]:
    return (bed.get("patient") or {}).get("id")


class BedRegistry:
    def __init__(self, db):
        self._wards = db[WARDS_COLLECTION]

    # ---------- reads ----------
    def _load(self, ward_id: str) -> Dict[str, Any]:
        doc = self._wards.find_one({"_id": ward_id})
        if not doc:
            raise NotFound(f"Ward {ward_id} not found")
        return doc

    def get_ward(self, ward_id: str) -> Ward:
        return Ward.from_doc(self._load(ward_id))

    def list_wards(self) -> List[Ward]:
        return [Ward.from_doc(d) for d in self._wards.find().sort("created_at", DESCENDING)]

    def get_bed(self, ward_id: str, bed_id: str) -> Bed:
        doc = self._load(ward_id)
        return Bed(**doc["beds"][_bed_index(doc, bed_id)])

    def find_ward_by_name(self, name: str) -> Optional[Ward]:
        doc = self._wards.find_one({"name_key": _key(name)})
        return Ward.from_doc(doc) if doc else None

    def locate_bed(self, ward_name: str, bed_label: str) -> Optional[Tuple[Ward, Bed]]:
        """Resolve the by-value (ward name, bed label) reference an admission carries."""
        ward = self.find_ward_by_name(ward_name)
        if ward is None:
            return None
        for bed in ward.beds:
            if _key(bed.label) == _key(bed_label):
                return ward, bed
        return None

    def occupancy_summary(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in BedStatus}
        for doc in self._wards.find({}, {"beds": 1}):
            for bed in doc.get("beds", []):
                counts[bed["status"]] = counts.get(bed["status"], 0) + 1
        counts["total"] = sum(counts.values())
        return counts

    # ---------- guarded write ----------
    def _mutate(
        self,
        ward_id: str,
        mutate_fn: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        """
        Load the ward, let mutate_fn change a copy, then write it back guarded on
        the version that was read. mutate_fn returns None when nothing changes.
        """
        doc = self._load(ward_id)
        version = doc.get("version", 0)
        updated = mutate_fn(copy.deepcopy(doc))
        if updated is None:
            return doc

        updated["updated_at"] = datetime.utcnow()
        fields = {k: v for k, v in updated.items() if k not in ("_id", "version")}
        try:
            res = self._wards.update_one(
                {"_id": ward_id, "version": version},
                {"$set": fields, "$inc": {"version": 1}},
            )
        except DuplicateKeyError as e:
            raise Conflict(f'Ward with name "{updated["name"]}" already exists') from e
        if res.matched_count == 0:
            raise Conflict(f'Ward "{doc["name"]}" was changed by another request; retry')
        updated["version"] = version + 1
        return updated

    # ---------- occupancy transitions ----------
    def reserve(self, ward_id: str, bed_id: str, patient: PatientRef) -> bool:
        """
        Available -> Occupied(patient). Returns True when the bed was reserved by
        this call and False when the same patient already held it.
        """
        reserved = []

        def _reserve(doc):
            bed = doc["beds"][_bed_index(doc, bed_id)]
            if is_occupied(bed):
                if _holder(bed) == patient.id:
                    return None
                raise BedUnavailable(
                    f'Bed "{bed["label"]}" in {doc["name"]} is occupied by another patient'
                )
            if bed["status"] != BedStatus.AVAILABLE.value:
                raise BedUnavailable(f'Bed "{bed["label"]}" in {doc["name"]} is {bed["status"]}')
            bed["status"] = BedStatus.OCCUPIED.value
            bed["patient"] = patient.model_dump()
            reserved.append(bed_id)
            return doc

        self._mutate(ward_id, _reserve)
        if not reserved:
            return False
        logger.info("Reserved bed %s in ward %s for patient %s", bed_id, ward_id, patient.id)
        return True

    def release(
        self,
        ward_id: str,
        bed_id: str,
        reason: str,
        patient_id: Optional[str] = None,
        next_status: BedStatus = BedStatus.NEEDS_CLEANING,
    ) -> Bed:
        """Occupied -> Needs Cleaning (or Maintenance); clears the patient."""
        if next_status not in RELEASE_STATES:
            raise InvalidState(f"A vacated bed cannot go straight to {next_status.value}")

        def _release(doc):
            bed = doc["beds"][_bed_index(doc, bed_id)]
            if not is_occupied(bed):
                raise InvalidState(f'Bed "{bed["label"]}" is not occupied ({bed["status"]})')
            if patient_id is not None and _holder(bed) != patient_id:
                raise InvalidState(f'Bed "{bed["label"]}" is held by another patient')
            bed["status"] = next_status.value
            bed["patient"] = None
            return doc

        doc = self._mutate(ward_id, _release)
        logger.info("Released bed %s in ward %s -> %s (%s)", bed_id, ward_id, next_status.value, reason)
        return Bed(**doc["beds"][_bed_index(doc, bed_id)])

    def cancel_reservation(self, ward_id: str, bed_id: str, patient_id: str) -> Bed:
        """
        Undo a reservation whose admission write never happened: the patient
        never used the bed, so it goes back to Available without cleaning.
        """
        def _cancel(doc):
            bed = doc["beds"][_bed_index(doc, bed_id)]
            if not is_occupied(bed) or _holder(bed) != patient_id:
                raise InvalidState(f'Bed "{bed["label"]}" holds no reservation for {patient_id}')
            bed["status"] = BedStatus.AVAILABLE.value
            bed["patient"] = None
            return doc

        doc = self._mutate(ward_id, _cancel)
        logger.info("Cancelled reservation of bed %s in ward %s for %s", bed_id, ward_id, patient_id)
        return Bed(**doc["beds"][_bed_index(doc, bed_id)])

    # ---------- ward administration ----------
    def create_ward(self, name: str, description: str = "", bed_count: int = 0) -> Ward:
        name = name.strip()
        if not name:
            raise InvalidRequest("Ward name is required")
        if self._wards.find_one({"name_key": _key(name)}, {"_id": 1}):
            raise Conflict(f'Ward with name "{name}" already exists')

        now = datetime.utcnow()
        doc = {
            "_id": _new_id("WARD"),
            "name": name,
            "name_key": _key(name),
            "description": description or "",
            "beds": [_new_bed(f"Bed {i + 1}") for i in range(bed_count)],
            "version": 0,
            "created_at": now,
            "updated_at": now,
        }
        try:
            self._wards.insert_one(doc)
        except DuplicateKeyError as e:
            raise Conflict(f'Ward with name "{name}" already exists') from e
        logger.info("Created ward %s (%s) with %d beds", doc["_id"], name, bed_count)
        return Ward.from_doc(doc)

    def update_ward(
        self,
        ward_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        bed_count: Optional[int] = None,
    ) -> Ward:
        def _update(doc):
            if name is not None and name.strip() != doc["name"]:
                new_name = name.strip()
                if _key(new_name) != doc["name_key"]:
                    # admissions refer to the ward by name
                    if any(is_occupied(b) for b in doc["beds"]):
                        raise InvalidState(
                            f'Ward "{doc["name"]}" has occupied beds and cannot be renamed'
                        )
                    clash = self._wards.find_one(
                        {"name_key": _key(new_name), "_id": {"$ne": ward_id}}, {"_id": 1}
                    )
                    if clash:
                        raise Conflict(f'Ward with name "{new_name}" already exists')
                doc["name"] = new_name
                doc["name_key"] = _key(new_name)
            if description is not None:
                doc["description"] = description
            if bed_count is not None:
                _resize(doc, bed_count)
            return doc

        return Ward.from_doc(self._mutate(ward_id, _update))

    def delete_ward(self, ward_id: str) -> None:
        doc = self._load(ward_id)
        if any(is_occupied(b) for b in doc["beds"]):
            raise InvalidState(f'Ward "{doc["name"]}" has occupied beds and cannot be deleted')
        res = self._wards.delete_one({"_id": ward_id, "version": doc.get("version", 0)})
        if res.deleted_count == 0:
            raise Conflict(f'Ward "{doc["name"]}" was changed by another request; retry')
        logger.info("Deleted ward %s (%s)", ward_id, doc["name"])

    def add_bed(self, ward_id: str, label: str) -> Ward:
        label = label.strip()
        if not label:
            raise InvalidRequest("Bed label is required")

        def _add(doc):
            if any(_key(b["label"]) == _key(label) for b in doc["beds"]):
                raise Conflict(f'Bed with label "{label}" already exists in this ward')
            doc["beds"].append(_new_bed(label))
            return doc

        return Ward.from_doc(self._mutate(ward_id, _add))

    def delete_bed(self, ward_id: str, bed_id: str) -> Ward:
        def _delete(doc):
            i = _bed_index(doc, bed_id)
            bed = doc["beds"][i]
            if is_occupied(bed):
                raise InvalidState(f'Bed "{bed["label"]}" is occupied and cannot be deleted')
            del doc["beds"][i]
            return doc

        return Ward.from_doc(self._mutate(ward_id, _delete))

    def set_bed_status(self, ward_id: str, bed_id: str, status: BedStatus) -> Bed:
        """Administrative setter for beds nobody occupies (e.g. cleaning done)."""
        if status == BedStatus.OCCUPIED:
            raise InvalidState("Beds become Occupied only through an admission")

        def _set(doc):
            bed = doc["beds"][_bed_index(doc, bed_id)]
            if is_occupied(bed):
                raise InvalidState(f'Bed "{bed["label"]}" is occupied; discharge or transfer first')
            if bed["status"] == status.value:
                return None
            bed["status"] = status.value
            return doc

        doc = self._mutate(ward_id, _set)
        return Bed(**doc["beds"][_bed_index(doc, bed_id)])


def _resize(doc: Dict[str, Any], target: int) -> None:
    beds = doc["beds"]
    if target > len(beds):
        next_no = max((_bed_number(b["label"]) for b in beds), default=0) + 1
        taken = {_key(b["label"]) for b in beds}
        while len(beds) < target:
            label = f"Bed {next_no}"
            next_no += 1
            if _key(label) not in taken:
                beds.append(_new_bed(label))
    elif target < len(beds):
        surplus = len(beds) - target
        removable = [b for status in _SHRINK_PRIORITY for b in beds if b["status"] == status.value]
        if len(removable) < surplus:
            raise InvalidState(
                f'Ward "{doc["name"]}" cannot shrink to {target} beds; the rest are occupied'
            )
        dropped = {b["bed_id"] for b in removable[:surplus]}
        doc["beds"] = [b for b in beds if b["bed_id"] not in dropped]
