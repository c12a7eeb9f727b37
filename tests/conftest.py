import os
import threading

# In-memory MongoDB for the whole test session; must be set before hms.config is imported
os.environ.setdefault("MONGO_MOCK", "1")

import mongomock
import pytest

from hms.db import ensure_indexes
from hms.models.records import register_patient
from hms.schemas.records_schema import PatientCreate
from hms.services.admission_orchestrator import AdmissionOrchestrator
from hms.services.bed_registry import BedRegistry


class _SerializedCollection:
    """
    mongomock applies one update in several Python steps while mongod applies
    it atomically per document. Running every collection call under one lock
    gives threaded tests the same per-operation atomicity.
    """

    def __init__(self, collection, lock):
        self._collection = collection
        self._lock = lock

    def __getattr__(self, name):
        attr = getattr(self._collection, name)
        if not callable(attr):
            return attr

        def _locked(*args, **kwargs):
            with self._lock:
                return attr(*args, **kwargs)
        return _locked


class _SerializedDatabase:
    def __init__(self, database):
        self._database = database
        self._lock = threading.RLock()

    def __getitem__(self, name):
        return _SerializedCollection(self._database[name], self._lock)

    def __getattr__(self, name):
        return getattr(self._database, name)


@pytest.fixture
def db():
    """Fresh in-memory database with the production indexes."""
    database = mongomock.MongoClient()["hospital_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def shared_db(db):
    """The same database, safe to hit from several threads at once."""
    return _SerializedDatabase(db)


@pytest.fixture
def registry(db):
    return BedRegistry(db)


@pytest.fixture
def orchestrator(db):
    return AdmissionOrchestrator(db)


@pytest.fixture
def make_patient(db):
    def _make(first_name="Jane", last_name="Doe"):
        return register_patient(db, PatientCreate(first_name=first_name, last_name=last_name))
    return _make
