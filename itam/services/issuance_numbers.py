"""Issuance numbers: ``ISS-<year>-<seq>``, one counter per calendar year.

The counter row is bumped with ``UPDATE ... SET last_value = last_value + 1``
before it is read. The UPDATE holds the row (or, on SQLite, the database)
write lock until the caller's transaction ends, so concurrent callers are
serialised and never read the same value. The sequence restarts at 1 each
year. A year's first number is seeded from any issuance numbers already stored
for that year, so numbers created before the counter table existed are not
reused.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.clock import Clock, SystemClock
from ..models.issuance import Issuance, IssuanceSequence
from ..settings import settings

logger = logging.getLogger("itam.issuance_numbers")

_NUMBER_RE = re.compile(r"^(?P<prefix>[A-Za-z]+)-(?P<year>\d{4})-(?P<seq>\d+)$")


@dataclass(frozen=True)
class IssuanceNumber:
    prefix: str
    year: int
    sequence: int

    def __str__(self) -> str:
        return format_issuance_number(self.year, self.sequence, self.prefix)


def format_issuance_number(year: int, sequence: int, prefix: str | None = None, width: int | None = None) -> str:
    prefix = prefix or settings.ISSUANCE_PREFIX
    width = width or settings.ISSUANCE_SEQUENCE_WIDTH
    return f"{prefix}-{year}-{sequence:0{width}d}"


def parse_issuance_number(value: str) -> IssuanceNumber | None:
    match = _NUMBER_RE.match((value or "").strip())
    if not match:
        return None
    return IssuanceNumber(match.group("prefix"), int(match.group("year")), int(match.group("seq")))


def _bump(db: Session, year: int) -> int | None:
    result = db.execute(
        update(IssuanceSequence)
        .where(IssuanceSequence.year == year)
        .values(last_value=IssuanceSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    return db.execute(select(IssuanceSequence.last_value).where(IssuanceSequence.year == year)).scalar_one()


def _highest_existing(db: Session, year: int, prefix: str) -> int:
    pattern = f"{prefix}-{year}-%"
    numbers = db.execute(select(Issuance.issuance_number).where(Issuance.issuance_number.like(pattern))).scalars()
    highest = 0
    for number in numbers:
        parsed = parse_issuance_number(number)
        if parsed and parsed.year == year and parsed.prefix == prefix:
            highest = max(highest, parsed.sequence)
    return highest


def _seed(db: Session, year: int, prefix: str) -> None:
    start = _highest_existing(db, year, prefix)
    savepoint = db.begin_nested()
    try:
        db.add(IssuanceSequence(year=year, last_value=start))
        db.flush()
        savepoint.commit()
        logger.info("issuance_sequence.seeded", extra={"extra_data": {"year": year, "start": start}})
    except IntegrityError:
        # Seeded concurrently by another transaction.
        savepoint.rollback()


def next_issuance_number(db: Session, clock: Clock | None = None) -> str:
    """Allocate the next number for the current year.

    Call inside the transaction that stores the issuance; the allocation is
    rolled back with it.
    """

    year = (clock or SystemClock()).now().year
    prefix = settings.ISSUANCE_PREFIX
    value = _bump(db, year)
    if value is None:
        _seed(db, year, prefix)
        value = _bump(db, year)
        if value is None:
            raise RuntimeError(f"issuance sequence for {year} could not be initialised")
    number = format_issuance_number(year, value, prefix)
    logger.debug("issuance_number.allocated", extra={"extra_data": {"year": year, "value": value}})
    return number


def current_sequence(db: Session, year: int) -> int:
    value = db.execute(select(IssuanceSequence.last_value).where(IssuanceSequence.year == year)).scalar_one_or_none()
    return int(value or 0)
