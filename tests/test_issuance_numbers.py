import threading
from datetime import datetime, timezone

from sqlalchemy.orm import sessionmaker

from itam.core.clock import FixedClock
from itam.db.session import transaction
from itam.models import Issuance, IssuanceType
from itam.services.issuance_numbers import (
    current_sequence,
    format_issuance_number,
    next_issuance_number,
    parse_issuance_number,
)


def test_numbers_are_sequential_and_zero_padded(db_session, clock):
    with transaction(db_session):
        first = next_issuance_number(db_session, clock)
        second = next_issuance_number(db_session, clock)

    assert first == "ISS-2026-0001"
    assert second == "ISS-2026-0002"
    assert current_sequence(db_session, 2026) == 2


def test_sequence_resets_each_year(db_session):
    clock = FixedClock(datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc))
    with transaction(db_session):
        for _ in range(3):
            last_of_year = next_issuance_number(db_session, clock)

    clock.advance(minutes=2)
    with transaction(db_session):
        first_of_next = next_issuance_number(db_session, clock)

    assert last_of_year == "ISS-2026-0003"
    assert first_of_next == "ISS-2027-0001"


def test_rolled_back_allocation_is_reused(db_session, clock):
    with transaction(db_session):
        next_issuance_number(db_session, clock)

    try:
        with transaction(db_session):
            assert next_issuance_number(db_session, clock) == "ISS-2026-0002"
            raise RuntimeError("abort")
    except RuntimeError:
        pass

    with transaction(db_session):
        assert next_issuance_number(db_session, clock) == "ISS-2026-0002"


def test_first_number_of_year_continues_after_existing_issuances(db_session, clock):
    db_session.add_all(
        [
            Issuance(
                issuance_number=number,
                issuance_type=IssuanceType.WHOLE_UNIT.value,
                created_at="2026-01-05T08:00:00Z",
            )
            for number in ("ISS-2026-0009", "ISS-2026-0011", "ISS-2025-0400")
        ]
    )
    db_session.commit()

    with transaction(db_session):
        number = next_issuance_number(db_session, clock)

    assert number == "ISS-2026-0012"


def test_concurrent_callers_never_share_a_number(file_engine, clock):
    Session = sessionmaker(bind=file_engine, autocommit=False, autoflush=False)
    seed = Session()
    with transaction(seed):
        next_issuance_number(seed, clock)
    seed.close()

    numbers: list[str] = []
    errors: list[BaseException] = []
    lock = threading.Lock()

    def worker():
        session = Session()
        try:
            for _ in range(5):
                with transaction(session):
                    number = next_issuance_number(session, clock)
                with lock:
                    numbers.append(number)
        except BaseException as exc:  # surfaced by the assertion below
            errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(numbers) == 30
    assert len(set(numbers)) == 30
    assert sorted(parse_issuance_number(n).sequence for n in numbers) == list(range(2, 32))


def test_format_and_parse():
    assert format_issuance_number(2026, 7) == "ISS-2026-0007"
    assert format_issuance_number(2026, 12345) == "ISS-2026-12345"
    parsed = parse_issuance_number("ISS-2026-0042")
    assert (parsed.prefix, parsed.year, parsed.sequence) == ("ISS", 2026, 42)
    assert str(parsed) == "ISS-2026-0042"
    assert parse_issuance_number("not-a-number") is None
