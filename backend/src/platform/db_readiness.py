"""Schema readiness: the tables entitlement reads and payment writes depend on."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

REQUIRED_ENTITLEMENT_TABLES = ("profiles",)


@dataclass(frozen=True)
class DBReadinessResult:
    ready: bool
    missing_tables: list[str]
    checked_tables: list[str]


def check_required_tables(session: Session, required_tables: Iterable[str]) -> DBReadinessResult:
    """
    Compare the required tables against the live schema.

    Raises:
        SQLAlchemyError: If the schema cannot be inspected
    """
    checked = list(required_tables)
    try:
        existing = set(inspect(session.connection()).get_table_names())
    except SQLAlchemyError:
        logger.exception("Schema inspection failed", extra={"tables": checked})
        raise

    missing = [name for name in checked if name not in existing]
    if missing:
        logger.warning("Required tables missing", extra={"missing_tables": missing})

    return DBReadinessResult(ready=not missing, missing_tables=missing, checked_tables=checked)
