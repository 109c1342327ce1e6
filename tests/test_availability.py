import pytest

from tablekeeper.errors import InvalidPartySize, InvalidTimeFormat, InvalidTimeWindow, TableNotFound
from tablekeeper.models.schemas import (
    AvailabilityQuery,
    Clear,
    ConflictNoAlternative,
    ConflictWithAlternative,
    Table,
)
from tablekeeper.services.availability import (
    check_availability,
    detect_double_bookings,
    free_tables,
    rank_tables,
    table_states,
)

from conftest import DATE, make_booking


def query(start, end=None, party_size=2, preferred=None, **kw):
    return AvailabilityQuery(
        date=kw.pop("date", DATE),
        start_time=start,
        end_time=end,
        party_size=party_size,
        preferred_table_id=preferred,
        **kw,
    )


def test_busy_preferred_table_offers_alternative(tables, dinner_booking):
    decision = check_availability(query("19:30", "21:30", party_size=3, preferred=2), tables, [dinner_booking])

    assert isinstance(decision, ConflictWithAlternative)
    assert decision.kind == "ConflictWithAlternative"
    assert decision.conflict.id == dinner_booking.id
    assert decision.alternative.id == 3


def test_no_preference_picks_tightest_fit(tables):
    decision = check_availability(query("12:00", party_size=2), tables, [])
    assert decision == Clear(table=tables[0])


def test_free_preferred_table_is_cleared_even_if_larger(tables):
    decision = check_availability(query("12:00", party_size=2, preferred=3), tables, [])
    assert isinstance(decision, Clear)
    assert decision.table.id == 3


def test_malformed_start_time_is_rejected(tables):
    with pytest.raises(InvalidTimeFormat):
        check_availability(query("25:99"), tables, [])


def test_malformed_booking_in_snapshot_aborts(tables):
    broken = make_booking(1, 1, "7pm")
    with pytest.raises(InvalidTimeFormat):
        check_availability(query("12:00"), tables, [broken])


@pytest.mark.parametrize("party_size", [0, -2])
def test_non_positive_party_size_is_rejected(tables, party_size):
    with pytest.raises(InvalidPartySize):
        check_availability(query("12:00", party_size=party_size), tables, [])


def test_back_to_back_inside_buffer_conflicts(tables):
    earlier = make_booking(1, 1, "18:00", "20:00")
    decision = check_availability(query("21:00", preferred=1), tables, [earlier])

    assert isinstance(decision, ConflictWithAlternative)
    assert decision.conflict.id == 1
    assert decision.alternative.id == 2


def test_both_sides_are_buffered(tables):
    earlier = make_booking(1, 1, "18:00", "20:00")
    # booking buffered to 21:00, request buffered back from its start: clear from 22:00
    assert isinstance(check_availability(query("21:59", preferred=1), tables, [earlier]), ConflictWithAlternative)
    assert check_availability(query("22:00", preferred=1), tables, [earlier]) == Clear(table=tables[0])


def test_buffer_and_duration_are_parameters(tables):
    earlier = make_booking(1, 1, "18:00", "20:00")
    decision = check_availability(query("20:00", preferred=1), tables, [earlier], buffer_minutes=0)
    assert decision == Clear(table=tables[0])

    short = make_booking(2, 1, "12:00")
    decision = check_availability(
        query("12:30", preferred=1), tables, [short], buffer_minutes=0, default_duration_minutes=30
    )
    assert decision == Clear(table=tables[0])


def test_same_inputs_same_decision(tables, dinner_booking):
    q = query("19:30", "21:30", party_size=3, preferred=2)
    assert check_availability(q, tables, [dinner_booking]) == check_availability(q, tables, [dinner_booking])


def test_inputs_are_not_mutated(tables, dinner_booking):
    bookings = [dinner_booking, make_booking(11, 3, "19:00", status="cancelled")]
    tables_before = [t.model_copy() for t in tables]
    bookings_before = [b.model_copy() for b in bookings]

    check_availability(query("19:30", party_size=3, preferred=2), tables, bookings)

    assert tables == tables_before
    assert bookings == bookings_before


def test_ranking_is_numeric_and_order_independent():
    tables = [
        Table(id=1, capacity=4, label="10"),
        Table(id=2, capacity=4, label="9"),
        Table(id=3, capacity=6, label="2"),
    ]
    for ordering in (tables, list(reversed(tables))):
        decision = check_availability(query("12:00", party_size=4), ordering, [])
        assert decision.table.label == "9"


def test_numeric_labels_rank_before_names():
    tables = [
        Table(id=1, capacity=2, label="Patio"),
        Table(id=2, capacity=2, label="7"),
        Table(id=3, capacity=2, label="Bar"),
    ]
    assert [t.id for t in rank_tables(tables, 2)] == [2, 3, 1]


def test_underscored_label_is_not_a_number():
    tables = [
        Table(id=1, capacity=2, label="1_0"),
        Table(id=2, capacity=2, label="9"),
        Table(id=3, capacity=2, label="11"),
    ]
    assert [t.id for t in rank_tables(tables, 2)] == [2, 3, 1]


def test_empty_window_is_rejected(tables):
    late = make_booking(1, 1, "23:00", "23:30")
    with pytest.raises(InvalidTimeWindow):
        check_availability(query("19:00", "19:00", preferred=1), tables, [late])


def test_alternative_never_below_party_size(tables):
    busy = make_booking(1, 3, "19:00", "21:00", party_size=4)
    other = make_booking(2, 2, "19:00", "21:00", party_size=4)
    decision = check_availability(query("19:00", party_size=4, preferred=3), tables, [busy, other])

    assert isinstance(decision, ConflictNoAlternative)
    assert decision.conflict.id == 1


def test_party_too_large_for_every_table(tables):
    decision = check_availability(query("19:00", party_size=9), tables, [])
    assert decision == ConflictNoAlternative(conflict=None)


def test_empty_table_catalog(dinner_booking):
    assert check_availability(query("19:00"), [], []) == ConflictNoAlternative(conflict=None)
    assert check_availability(query("19:00", preferred=2), [], [dinner_booking]) == ConflictNoAlternative(conflict=None)


def test_unknown_preferred_table(tables):
    with pytest.raises(TableNotFound):
        check_availability(query("19:00", preferred=99), tables, [])


def test_inactive_tables_are_not_offered():
    tables = [
        Table(id=1, capacity=2, label="1"),
        Table(id=2, capacity=2, label="2", active=False),
        Table(id=3, capacity=6, label="3"),
    ]
    busy = make_booking(1, 1, "19:00", "21:00")
    decision = check_availability(query("19:00", preferred=1), tables, [busy])
    assert decision.alternative.id == 3


def test_ignored_bookings(tables):
    bookings = [
        make_booking(1, 1, "19:00", status="cancelled"),
        make_booking(2, 1, "19:00", date="2025-06-15"),
        make_booking(3, None, "19:00"),
    ]
    assert check_availability(query("19:00", preferred=1), tables, bookings) == Clear(table=tables[0])


@pytest.mark.parametrize("status", ["pending", "completed", "no-show"])
def test_other_statuses_still_block(tables, status):
    booking = make_booking(1, 1, "19:00", status=status)
    decision = check_availability(query("19:00", preferred=1), tables, [booking])
    assert isinstance(decision, ConflictWithAlternative)


def test_excluded_booking_does_not_conflict_with_itself(tables, dinner_booking):
    q = query("19:30", party_size=3, preferred=2, exclude_booking_id=dinner_booking.id)
    assert check_availability(q, tables, [dinner_booking]) == Clear(table=tables[1])


def test_earliest_conflict_is_reported(tables):
    late = make_booking(5, 1, "20:00", "21:00")
    early = make_booking(7, 1, "18:00", "19:00")
    decision = check_availability(query("19:00", preferred=1), tables, [late, early])
    assert decision.conflict.id == 7


def test_late_booking_window_crosses_midnight(tables):
    late = make_booking(1, 1, "23:30")
    decision = check_availability(query("22:00", preferred=1), tables, [late])
    assert isinstance(decision, ConflictWithAlternative)


def test_free_tables_lists_every_candidate_best_first(tables, dinner_booking):
    free = free_tables(query("19:30", party_size=2), tables, [dinner_booking])
    assert [t.id for t in free] == [1, 3]


def test_table_states():
    tables = [
        Table(id=1, capacity=2, label="1"),
        Table(id=2, capacity=4, label="2"),
        Table(id=3, capacity=4, label="3"),
        Table(id=4, capacity=4, label="4", active=False),
    ]
    bookings = [
        make_booking(1, 1, "19:00", "21:00"),
        make_booking(2, 2, "20:30"),
        make_booking(3, 3, "19:30", status="cancelled"),
        make_booking(4, 3, "22:00"),
    ]
    states = {s.table.id: s for s in table_states(tables, bookings, DATE, "20:00")}

    assert set(states) == {1, 2, 3}
    assert states[1].state == "occupied"
    assert states[1].current_booking.id == 1
    assert states[2].state == "reserved"
    assert states[2].next_booking.id == 2
    assert states[3].state == "available"
    assert states[3].next_booking.id == 4


def test_detect_double_bookings():
    bookings = [
        make_booking(1, 1, "19:00", "21:00"),
        make_booking(2, 1, "20:00"),
        make_booking(3, 2, "18:00", "19:00"),
        make_booking(4, 2, "19:00", "20:00"),
        make_booking(5, 3, "19:00", status="pending"),
        make_booking(6, 3, "19:00"),
    ]
    found = detect_double_bookings(bookings)

    assert len(found) == 1
    assert found[0].table_id == 1
    assert [b.id for b in found[0].bookings] == [1, 2]
    assert (found[0].overlap_start, found[0].overlap_end) == ("20:00", "21:00")
