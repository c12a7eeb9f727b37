# hms/config.py
import os
from dotenv import load_dotenv

load_dotenv()

# Prefer Atlas if provided, else local
MONGO_URI = (
    os.getenv("MONGO_URI")
    or os.getenv("MONGODB_URI")
    or "mongodb://127.0.0.1:27017"
)
MONGO_DB_NAME = (
    os.getenv("MONGO_DB_NAME")
    or os.getenv("DB_NAME")
    or "hospital"
)

USE_MOCK = os.getenv("MONGO_MOCK") == "1"

# Multi-document transactions need a replica set; mongomock has no sessions
USE_TRANSACTIONS = os.getenv("MONGO_TRANSACTIONS", "1") == "1" and not USE_MOCK

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Collection names used across services
SEQUENCES_COLLECTION = os.getenv("SEQUENCES_COLLECTION", "sequences")
WARDS_COLLECTION = os.getenv("WARDS_COLLECTION", "wards")
ADMISSIONS_COLLECTION = os.getenv("ADMISSIONS_COLLECTION", "admissions")
PATIENTS_COLLECTION = os.getenv("PATIENTS_COLLECTION", "patients")
INVOICES_COLLECTION = os.getenv("INVOICES_COLLECTION", "invoices")
LAB_ORDERS_COLLECTION = os.getenv("LAB_ORDERS_COLLECTION", "labOrders")
