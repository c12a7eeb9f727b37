# hms/services/sequence_allocator.py
"""
Period-scoped sequence identifiers.

One counter document per scope lives in the sequences collection:

    {"_id": "patients", "periods": {"2024-07": 41, "2024-08": 3}}

Each allocation bumps exactly one period entry with a single atomic
$inc + upsert, so the read, increment and write happen as one store
operation and concurrent callers are serialized by MongoDB. When
transactions are enabled the caller's dependent write (usually inserting
the entity under the new identifier) commits in the same transaction.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from hms.config import SEQUENCES_COLLECTION
from hms.db import transactions_enabled
from hms.errors import Conflict, InvalidRequest, NotFound
from hms.services.utils.id_formats import SCOPES, Formatter, check_period

logger = logging.getLogger(__name__)

# (identifier, session) -> None; session is None outside a transaction
OnIssue = Callable[[str, Any], None]

_WRITE_CONFLICT_CODE = 112


def session_kw(session) -> Dict[str, Any]:
    # mongomock refuses any session argument, even None
    return {"session": session} if session is not None else {}


def _is_write_conflict(err: PyMongoError) -> bool:
    if err.has_error_label("TransientTransactionError"):
        return True
    return isinstance(err, OperationFailure) and err.code == _WRITE_CONFLICT_CODE


def _check_key(scope: str, period: str) -> None:
    if not scope or not scope.strip():
        raise InvalidRequest("scope must be a non-empty string")
    if not period or "." in period or period.startswith("$"):
        raise InvalidRequest(f"invalid period label: {period!r}")


class SequenceAllocator:
    def __init__(self, db, use_transactions: Optional[bool] = None):
        self._db = db
        self._counters = db[SEQUENCES_COLLECTION]
        self._use_transactions = (
            transactions_enabled() if use_transactions is None else use_transactions
        )

    def allocate(
        self,
        scope: str,
        period: str,
        formatter: Formatter,
        on_issue: Optional[OnIssue] = None,
    ) -> str:
        """
        Issue the next number for (scope, period) and format it.

        `on_issue(identifier, session)` runs inside the same transaction as the
        increment when transactions are enabled. Without transactions it runs
        right after the increment; if it fails the number stays consumed (a gap,
        never a duplicate) and the error propagates.
        """
        _check_key(scope, period)
        try:
            if self._use_transactions:
                with self._db.client.start_session() as session:
                    identifier = session.with_transaction(
                        lambda s: self._issue(scope, period, formatter, on_issue, s)
                    )
            else:
                identifier = self._issue(scope, period, formatter, None, None)
                if on_issue is not None:
                    try:
                        on_issue(identifier, None)
                    except Exception:
                        logger.warning(
                            "Identifier %s was issued but its record was not written", identifier
                        )
                        raise
        except DuplicateKeyError as e:
            raise Conflict(f"Concurrent write while allocating in {scope}/{period}") from e
        except PyMongoError as e:
            if _is_write_conflict(e):
                raise Conflict(f"Write conflict while allocating in {scope}/{period}") from e
            raise

        logger.info("Issued %s (scope=%s, period=%s)", identifier, scope, period)
        return identifier

    def _issue(self, scope, period, formatter, on_issue, session) -> str:
        counter = self._counters.find_one_and_update(
            {"_id": scope},
            {
                "$inc": {f"periods.{period}": 1},
                "$set": {"updated_at": datetime.utcnow()},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
            **session_kw(session),
        )
        seq = int(counter["periods"][period])
        identifier = formatter(period, seq)
        if on_issue is not None:
            on_issue(identifier, session)
        return identifier

    def peek(self, scope: str, period: str) -> int:
        """Last issued number for (scope, period); 0 when nothing was issued."""
        doc = self._counters.find_one({"_id": scope}, {"periods": 1})
        if not doc:
            return 0
        return int((doc.get("periods") or {}).get(period, 0))


def allocate_id(db, scope: str, period: Optional[str] = None) -> str:
    """
    Mint a standalone identifier for one of the registered scopes
    (patients, invoices, lab_orders, admissions). The period defaults to the
    current month or year, depending on the scope.
    """
    try:
        period_fn, formatter = SCOPES[scope]
    except KeyError:
        raise NotFound(f"Unknown identifier scope: {scope}") from None
    period = period or period_fn(None)
    check_period(scope, period)
    return SequenceAllocator(db).allocate(scope, period, formatter)
