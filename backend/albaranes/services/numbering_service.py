# Overview: Delivery note number allocation (ALB-YYMM-NNNN with ALB-<epoch ms> fallback).

"""
Delivery Note Numbering

FORMAT: ALB-{YY}{MM}-{NNNN}
- YY/MM come from the moment of allocation
- NNNN is the trailing four digits of the most recently created note
  (any period, any tenant) plus one, zero-padded to four digits

The counter is global and is NOT reset when the month changes: a note
created in November after ALB-2310-0042 becomes ALB-2311-0043.

FALLBACK: ALB-{unix epoch milliseconds} whenever the previous number
cannot be read or parsed. Allocation never raises.

CONCURRENCY: The previous number is read at flush time, immediately
before the INSERT. Two concurrent creates can still derive the same
number; the unique constraint on delivery_notes.number rejects the
second one (surfaced to the caller as a conflict, not retried).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from albaranes.time_utils import epoch_millis


NUMBER_PREFIX = "ALB"
SEQUENCE_DIGITS = 4


def fallback_number(now: datetime) -> str:
    return f"{NUMBER_PREFIX}-{epoch_millis(now)}"


def period_of(now: datetime) -> str:
    return f"{now.year % 100:02d}{now.month:02d}"


def allocate_number(now: datetime, last_issued_number: Optional[str]) -> str:
    """
    Derive the next delivery note number.

    Args:
        now: Allocation time; supplies the YYMM period
        last_issued_number: Number of the most recently created note, or None

    Returns:
        "ALB-YYMM-NNNN", or "ALB-<epoch ms>" if last_issued_number is unusable
    """
    try:
        if last_issued_number is None:
            sequence = 1
        else:
            suffix = last_issued_number[-SEQUENCE_DIGITS:]
            if len(suffix) != SEQUENCE_DIGITS or not suffix.isdigit():
                return fallback_number(now)
            sequence = int(suffix) + 1
        return f"{NUMBER_PREFIX}-{period_of(now)}-{sequence:0{SEQUENCE_DIGITS}d}"
    except Exception:
        return fallback_number(now)


def last_issued_number(session) -> Optional[str]:
    """Number of the most recently created delivery note across all owners."""
    from ..models import DeliveryNote

    with session.no_autoflush:
        return (
            session.query(DeliveryNote.number)
            .filter(DeliveryNote.number.isnot(None))
            .order_by(DeliveryNote.created_at.desc(), DeliveryNote.id.desc())
            .limit(1)
            .scalar()
        )


def next_number_for_save(session, now: datetime) -> str:
    """Read the last issued number and allocate the next one; lookup errors fall back."""
    try:
        previous = last_issued_number(session)
    except SQLAlchemyError:
        current_app.logger.warning(
            "Could not read last delivery note number; using timestamp fallback", exc_info=True
        )
        return fallback_number(now)

    number = allocate_number(now, previous)
    if previous is not None and number == fallback_number(now):
        current_app.logger.warning(
            "Unparseable previous delivery note number %r; using timestamp fallback", previous
        )
    return number
