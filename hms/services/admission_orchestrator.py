# hms/services/admission_orchestrator.py
"""
Admission, transfer and discharge.

Each operation touches an Admission document and one or two beds, which live
in different documents and are not covered by one transaction. Consistency
comes from ordering and compensation instead:

- admit:     reserve bed -> write admission (cancel the reservation if that fails)
- transfer:  reserve destination -> move admission -> release origin
- discharge: mark admission Discharged -> release its bed

A crash between steps can still leave partial state; repeating the same
operation finishes it (a retried transfer finds the destination already held
by the patient, a retried discharge releases a bed still held).
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from hms.config import ADMISSIONS_COLLECTION
from hms.errors import AlreadyDischarged, Conflict, HospitalError, InvalidState, NotFound
from hms.models.records import get_patient
from hms.schemas.admission_schema import (
    Admission,
    AdmissionDetails,
    AdmissionStatus,
    DischargeSummary,
)
from hms.schemas.ward_schema import Bed, BedStatus, PatientRef
from hms.services.bed_registry import BedRegistry
from hms.services.sequence_allocator import SequenceAllocator, session_kw
from hms.services.utils.id_formats import ADMISSIONS, admission_id_format, yearly_period

logger = logging.getLogger(__name__)

ADMITTED = AdmissionStatus.ADMITTED.value
DISCHARGED = AdmissionStatus.DISCHARGED.value


def _same(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


def _find_bed(ward, bed_id: str) -> Bed:
    for bed in ward.beds:
        if bed.bed_id == bed_id:
            return bed
    raise NotFound(f'Bed {bed_id} not found in ward "{ward.name}"')


class AdmissionOrchestrator:
    def __init__(self, db, registry: Optional[BedRegistry] = None,
                 allocator: Optional[SequenceAllocator] = None):
        self._db = db
        self._admissions = db[ADMISSIONS_COLLECTION]
        self.registry = registry or BedRegistry(db)
        self.allocator = allocator or SequenceAllocator(db)

    # ---------- reads ----------
    def _load(self, admission_id: str) -> Dict[str, Any]:
        doc = self._admissions.find_one({"_id": admission_id})
        if not doc:
            raise NotFound(f"Admission {admission_id} not found")
        return doc

    def get_admission(self, admission_id: str) -> Admission:
        return Admission.from_doc(self._load(admission_id))

    def list_admissions(self, status: Optional[AdmissionStatus] = None,
                        patient_id: Optional[str] = None) -> List[Admission]:
        query: Dict[str, Any] = {}
        if status is not None:
            query["status"] = status.value
        if patient_id:
            query["patient.id"] = patient_id
        cursor = self._admissions.find(query).sort("created_at", DESCENDING)
        return [Admission.from_doc(d) for d in cursor]

    # ---------- admit ----------
    def admit(self, patient_id: str, ward_id: str, bed_id: str,
              details: AdmissionDetails, now: Optional[datetime] = None) -> Admission:
        patient_doc = get_patient(self._db, patient_id)
        patient = PatientRef(id=patient_doc["id"], name=patient_doc["name"])
        ward = self.registry.get_ward(ward_id)
        bed = _find_bed(ward, bed_id)

        if self._admissions.find_one({"patient.id": patient.id, "status": ADMITTED}, {"_id": 1}):
            raise InvalidState(f"Patient {patient.id} already has an active admission")

        newly_reserved = self.registry.reserve(ward_id, bed_id, patient)

        now = now or datetime.utcnow()
        doc = {
            "patient": patient.model_dump(),
            "admission_date": (details.admission_date or now.date()).isoformat(),
            "ward": ward.name,
            "bed": bed.label,
            "admitting_doctor": details.admitting_doctor,
            "reason": details.reason,
            "status": ADMITTED,
            "discharge_date": None,
            "discharge_summary": None,
            "transfers": [],
            "created_at": now,
            "updated_at": now,
        }

        def _write(identifier: str, session) -> None:
            doc["_id"] = identifier
            self._admissions.insert_one(dict(doc), **session_kw(session))

        try:
            admission_id = self.allocator.allocate(
                ADMISSIONS, yearly_period(now), admission_id_format, on_issue=_write
            )
        except Exception as e:
            if newly_reserved:
                self._undo_reservation(ward_id, bed_id, patient.id, e)
            raise

        logger.info("Admitted %s as %s into %s/%s", patient.id, admission_id, ward.name, bed.label)
        return Admission.from_doc(doc)

    # ---------- transfer ----------
    def transfer(self, admission_id: str, dest_ward_id: str, dest_bed_id: str,
                 reason: Optional[str] = None, now: Optional[datetime] = None) -> Admission:
        doc = self._load(admission_id)
        if doc["status"] == DISCHARGED:
            raise AlreadyDischarged(f"Admission {admission_id} is already discharged")
        dest_ward = self.registry.get_ward(dest_ward_id)
        dest_bed = _find_bed(dest_ward, dest_bed_id)
        patient = PatientRef(**doc["patient"])
        origin_ward, origin_bed = doc["ward"], doc["bed"]

        if _same(dest_ward.name, origin_ward) and _same(dest_bed.label, origin_bed):
            logger.info("Transfer of %s to its current bed %s/%s is a no-op",
                        admission_id, origin_ward, origin_bed)
            return Admission.from_doc(doc)

        # Destination first: a failed transfer never leaves the patient without a bed
        newly_reserved = self.registry.reserve(dest_ward_id, dest_bed_id, patient)

        now = now or datetime.utcnow()
        entry = {
            "from_ward": origin_ward,
            "from_bed": origin_bed,
            "to_ward": dest_ward.name,
            "to_bed": dest_bed.label,
            "reason": reason,
            "transferred_at": now,
        }
        try:
            res = self._admissions.update_one(
                {"_id": admission_id, "status": ADMITTED, "ward": origin_ward, "bed": origin_bed},
                {
                    "$set": {"ward": dest_ward.name, "bed": dest_bed.label, "updated_at": now},
                    "$push": {"transfers": entry},
                },
            )
            if res.matched_count == 0:
                raise Conflict(f"Admission {admission_id} was changed by another request; transfer aborted")
        except Exception as e:
            if newly_reserved:
                self._undo_reservation(dest_ward_id, dest_bed_id, patient.id, e)
            raise

        try:
            released = self._release_held_bed(origin_ward, origin_bed, patient.id,
                                               reason=f"transfer of {admission_id}")
        except Conflict as e:
            raise Conflict(
                f"Transfer to {dest_ward.name}/{dest_bed.label} committed but releasing "
                f"{origin_ward}/{origin_bed} failed: {e.message}"
            ) from e
        if not released:
            logger.warning("Origin bed %s/%s was not held by %s during transfer of %s",
                           origin_ward, origin_bed, patient.id, admission_id)

        logger.info("Transferred %s from %s/%s to %s/%s", admission_id,
                    origin_ward, origin_bed, dest_ward.name, dest_bed.label)
        return self.get_admission(admission_id)

    # ---------- discharge ----------
    def discharge(self, admission_id: str, summary: Optional[DischargeSummary] = None,
                  now: Optional[datetime] = None) -> Admission:
        doc = self._load(admission_id)
        patient_id = doc["patient"]["id"]
        first_time = doc["status"] == ADMITTED

        if first_time:
            now = now or datetime.utcnow()
            summary = summary or DischargeSummary()
            discharge_date = summary.discharge_date or now.date()
            summary = summary.model_copy(update={"discharge_date": discharge_date})
            res = self._admissions.update_one(
                {"_id": admission_id, "status": ADMITTED},
                {"$set": {
                    "status": DISCHARGED,
                    "discharge_date": discharge_date.isoformat(),
                    "discharge_summary": summary.model_dump(mode="json"),
                    "updated_at": now,
                }},
            )
            if res.matched_count == 0:
                first_time = False
                logger.info("Admission %s was discharged by a concurrent request", admission_id)
            # re-read: ward/bed as of the moment it was discharged
            doc = self._load(admission_id)

        # A later admission of the same patient may hold this bed now
        newer = self._admissions.find_one(
            {"patient.id": patient_id, "status": ADMITTED, "ward": doc["ward"], "bed": doc["bed"]},
            {"_id": 1},
        )
        if newer:
            logger.info("Bed %s/%s belongs to active admission %s; %s leaves it alone",
                        doc["ward"], doc["bed"], newer["_id"], admission_id)
            return Admission.from_doc(doc)

        try:
            released = self._release_held_bed(doc["ward"], doc["bed"], patient_id,
                                              reason=f"discharge of {admission_id}")
        except Conflict as e:
            raise Conflict(
                f"Admission {admission_id} is discharged but releasing {doc['ward']}/{doc['bed']} "
                f"failed: {e.message}; repeat the discharge to finish"
            ) from e

        if first_time and not released:
            logger.warning("Bed %s/%s was already vacated when %s was discharged",
                           doc["ward"], doc["bed"], admission_id)
        elif released:
            logger.info("Discharged %s; bed %s/%s needs cleaning", admission_id, doc["ward"], doc["bed"])
        return Admission.from_doc(doc)

    # ---------- helpers ----------
    def _release_held_bed(self, ward_name: str, bed_label: str, patient_id: str, reason: str) -> bool:
        """
        Release the bed an admission points at if the patient still holds it.
        Returns False when there is nothing to release.
        """
        located = self.registry.locate_bed(ward_name, bed_label)
        if located is None:
            return False
        ward, bed = located
        if bed.status != BedStatus.OCCUPIED or bed.patient is None or bed.patient.id != patient_id:
            return False
        try:
            self.registry.release(ward.ward_id, bed.bed_id, reason, patient_id=patient_id)
        except InvalidState:
            # vacated between the read and the write
            return False
        return True

    def _undo_reservation(self, ward_id: str, bed_id: str, patient_id: str, cause: Exception) -> None:
        try:
            self.registry.cancel_reservation(ward_id, bed_id, patient_id)
        except (HospitalError, PyMongoError) as e:
            logger.error(
                "Could not cancel reservation of bed %s in ward %s for %s after %r: %s",
                bed_id, ward_id, patient_id, cause, e,
            )
