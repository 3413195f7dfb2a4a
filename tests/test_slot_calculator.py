"""
Tests for slot calculator.
"""

from datetime import date

import pytest

from dentalslots.domain.exceptions import SchedulingConflictError
from dentalslots.domain.models import (
    AppointmentRecord,
    BlockedPeriod,
    CandidateSlot,
    ClockInterval,
    DaySnapshot,
    OccupiedInterval,
    WorkSchedule,
)
from dentalslots.domain.slot_calculator import (
    SlotCalculator,
    filter_available,
    generate_slots,
    is_working_day,
    overlaps,
)

FRIDAY = date(2025, 6, 20)
SATURDAY = date(2025, 6, 21)
SUNDAY = date(2025, 6, 22)
MONDAY = date(2025, 6, 23)
TUESDAY = date(2025, 6, 24)


def appointment(appointment_id, time_from, time_to, status="confirmed", on_date=FRIDAY):
    return AppointmentRecord(
        appointment_id=appointment_id,
        dentist_id="D001",
        date=on_date,
        time_from=time_from,
        time_to=time_to,
        status=status,
        patient_id="P001",
    )


def snapshot(appointments=(), blocked=(), on_date=FRIDAY):
    return DaySnapshot(
        dentist_id="D001",
        date=on_date,
        appointments=list(appointments),
        blocked_periods=list(blocked),
    )


class TestGenerateSlots:
    """Tests for slot generation."""

    def test_regular_working_day(self):
        """Test 09:00-17:00 with 30 minute slots."""
        slots = generate_slots("09:00", "17:00", 30)

        assert len(slots) == 16
        assert slots[0].time_from == "09:00"
        assert slots[-1].time_to == "17:00"

    def test_slots_are_contiguous(self):
        """Test each slot starts where the previous one ended."""
        slots = generate_slots("09:00", "17:00", 45)

        assert all(slot.duration_minutes() == 45 for slot in slots)
        for previous, current in zip(slots, slots[1:]):
            assert current.start == previous.end

    def test_partial_trailing_slot_is_dropped(self):
        """Test that a slot which would run past closing is not generated."""
        slots = generate_slots("09:00", "10:15", 30)

        assert [str(slot) for slot in slots] == ["09:00 - 09:30", "09:30 - 10:00"]

    def test_overnight_window(self):
        """Test a window that wraps past midnight."""
        slots = generate_slots("22:00", "02:00", 60)

        assert [(slot.time_from, slot.time_to) for slot in slots] == [
            ("22:00", "23:00"),
            ("23:00", "00:00"),
            ("00:00", "01:00"),
            ("01:00", "02:00"),
        ]

    def test_equal_bounds_span_a_whole_day(self):
        """Test start == end is read as a 24 hour window."""
        slots = generate_slots("09:00", "09:00", 60)
        assert len(slots) == 24

    def test_cap_at_max_slots(self):
        """Test generation stops at the slot cap."""
        slots = generate_slots("00:00", "00:00", 15)
        assert len(slots) == 50

        calculator = SlotCalculator(max_slots=5)
        assert len(calculator.generate_slots("09:00", "17:00", 30)) == 5

    def test_descriptive_duration(self):
        """Test durations given as text."""
        assert len(generate_slots("09:00", "17:00", "1 hour")) == 8
        assert len(generate_slots("2 PM", "8 PM", "1 hour")) == 6

    def test_unparseable_bounds_give_no_slots(self):
        """Test missing working hours never raise."""
        assert generate_slots("", "17:00", 30) == []
        assert generate_slots("09:00", None, 30) == []

    def test_non_positive_duration_gives_no_slots(self):
        """Test zero or negative durations yield nothing."""
        assert generate_slots("09:00", "17:00", 0) == []
        assert generate_slots("09:00", "17:00", -30) == []

    def test_unparseable_duration_uses_default(self):
        """Test the calculator default replaces an unusable duration."""
        calculator = SlotCalculator(default_duration_minutes=60)
        assert len(calculator.generate_slots("09:00", "17:00", None)) == 8


class TestOverlaps:
    """Tests for the overlap predicate."""

    def test_symmetric(self):
        """Test overlap gives the same answer both ways."""
        pairs = [
            (ClockInterval(600, 630), ClockInterval(615, 645)),
            (ClockInterval(600, 630), ClockInterval(630, 660)),
            (ClockInterval(600, 700), ClockInterval(620, 640)),
            (ClockInterval(600, 630), ClockInterval(700, 730)),
        ]
        for first, second in pairs:
            assert overlaps(first, second) == overlaps(second, first)

    def test_adjacent_is_not_overlapping(self):
        """Test a slot ending when an appointment starts is free."""
        assert not overlaps(ClockInterval(570, 600), ClockInterval(600, 630))


class TestFilterAvailable:
    """Tests for filtering candidates against occupied intervals."""

    def test_booking_removes_exactly_one_slot(self):
        """Test a 10:00-10:30 appointment removes only the 10:00 slot."""
        calculator = SlotCalculator()
        candidates = calculator.generate_slots("09:00", "17:00", 30)
        occupied = calculator.build_occupied_intervals(snapshot([appointment(1, "10:00", "10:30")]))

        available = calculator.filter_available(candidates, occupied)

        assert len(available) == 15
        assert "10:00" not in [slot.time_from for slot in available]
        assert "09:30" in [slot.time_from for slot in available]
        assert "10:30" in [slot.time_from for slot in available]

    def test_partial_overlap_removes_both_neighbours(self):
        """Test an off-grid appointment blocks every slot it touches."""
        candidates = generate_slots("09:00", "17:00", 30)
        occupied = [OccupiedInterval(start=615, end=645)]

        available = filter_available(candidates, occupied)

        assert len(available) == 14

    def test_result_is_ordered_subset(self):
        """Test the output keeps candidate order and adds nothing."""
        candidates = generate_slots("09:00", "17:00", 30)
        occupied = [OccupiedInterval(start=720, end=780)]

        available = filter_available(candidates, occupied)

        assert all(slot in candidates for slot in available)
        assert available == sorted(available, key=lambda slot: slot.start)

    def test_idempotent(self):
        """Test filtering twice changes nothing."""
        candidates = generate_slots("09:00", "17:00", 30)
        occupied = [OccupiedInterval(start=600, end=630), OccupiedInterval(start=900, end=960)]

        once = filter_available(candidates, occupied)
        assert filter_available(once, occupied) == once

    def test_no_occupied_intervals(self):
        """Test every candidate survives an empty day."""
        candidates = generate_slots("09:00", "17:00", 30)
        assert filter_available(candidates, []) == candidates

    def test_whole_day_block_removes_everything(self):
        """Test a whole-day block empties the day."""
        calculator = SlotCalculator()
        day = snapshot(blocked=[BlockedPeriod(dentist_id="D001", date=FRIDAY)])
        schedule = WorkSchedule("Monday", "Friday", "09:00", "17:00")

        assert calculator.available_slots(schedule, 30, day) == []

    def test_whole_day_block_covers_overnight_window(self):
        """Test a whole-day block also removes slots after midnight."""
        calculator = SlotCalculator()
        day = snapshot(blocked=[BlockedPeriod(dentist_id="D001", date=FRIDAY)])
        schedule = WorkSchedule("Monday", "Friday", "22:00", "02:00")

        assert calculator.available_slots(schedule, 60, day) == []

    def test_overnight_slots_compare_on_day_clock(self):
        """Test slots after midnight match appointments stored at early times."""
        calculator = SlotCalculator()
        day = snapshot([appointment(1, "00:30", "01:00")])
        schedule = WorkSchedule("Monday", "Friday", "22:00", "02:00")

        available = calculator.available_slots(schedule, 60, day)

        assert [slot.time_from for slot in available] == ["22:00", "23:00", "01:00"]

    def test_appointment_crossing_midnight_blocks_early_slots(self):
        """Test an appointment from 23:30 to 00:30 takes both slots it touches."""
        calculator = SlotCalculator()
        day = snapshot([appointment(1, "23:30", "00:30")])
        schedule = WorkSchedule("Monday", "Friday", "22:00", "02:00")

        available = calculator.available_slots(schedule, 60, day)

        assert [str(slot) for slot in available] == ["22:00 - 23:00", "01:00 - 02:00"]


class TestBuildOccupiedIntervals:
    """Tests for merging appointments and blocks."""

    def test_cancelled_appointments_are_ignored(self):
        """Test only occupying statuses hold time."""
        calculator = SlotCalculator()
        day = snapshot([
            appointment(1, "10:00", "10:30", status="confirmed"),
            appointment(2, "11:00", "11:30", status="Pending"),
            appointment(3, "12:00", "12:30", status="cancelled"),
            appointment(4, "13:00", "13:30", status="checkedin"),
            appointment(5, "14:00", "14:30", status="completed"),
        ])

        occupied = calculator.build_occupied_intervals(day)

        assert [busy.reference for busy in occupied] == [1, 2, 4, 5]
        assert all(busy.source == "appointment" for busy in occupied)

    def test_custom_occupying_statuses(self):
        """Test a calculator configured to ignore pending appointments."""
        calculator = SlotCalculator(occupying_statuses=["confirmed"])
        day = snapshot([appointment(1, "10:00", "10:30", status="pending")])

        assert calculator.build_occupied_intervals(day) == []

    def test_unusable_appointment_times_are_skipped(self):
        """Test that appointments with broken times do not crash the day."""
        calculator = SlotCalculator()
        day = snapshot([appointment(1, "", "10:30"), appointment(2, "10:00", "10:00")])

        assert calculator.build_occupied_intervals(day) == []

    def test_blocks(self):
        """Test blocked periods become occupied intervals."""
        calculator = SlotCalculator()
        day = snapshot(blocked=[
            BlockedPeriod("D001", FRIDAY, "12:00", "13:00", block_id=7),
            BlockedPeriod("D001", FRIDAY, block_id=8),
        ])

        occupied = calculator.build_occupied_intervals(day)

        assert [(busy.start, busy.end, busy.source, busy.reference) for busy in occupied] == [
            (720, 780, "block", 7),
            (0, 1439, "block", 8),
        ]


class TestIsWorkingDay:
    """Tests for the working-day check."""

    def test_plain_range(self):
        """Test Monday to Friday."""
        schedule = WorkSchedule("Monday", "Friday", "09:00", "17:00")

        assert is_working_day(FRIDAY, schedule)
        assert is_working_day(MONDAY, schedule)
        assert not is_working_day(SATURDAY, schedule)
        assert not is_working_day(SUNDAY, schedule)

    def test_range_wrapping_the_week(self):
        """Test Saturday to Monday wraps over Sunday."""
        schedule = WorkSchedule("Saturday", "Monday", "14:00", "20:00")

        assert is_working_day(SATURDAY, schedule)
        assert is_working_day(SUNDAY, schedule)
        assert is_working_day(MONDAY, schedule)
        assert not is_working_day(TUESDAY, schedule)
        assert not is_working_day(FRIDAY, schedule)

    def test_single_day_range(self):
        """Test a range of one day."""
        schedule = WorkSchedule("Tue", "tue", "09:00", "12:00")

        assert is_working_day(TUESDAY, schedule)
        assert not is_working_day(MONDAY, schedule)

    def test_unknown_weekday_fails_open(self):
        """Test unknown day names count as working by default."""
        schedule = WorkSchedule("Funday", "Friday", "09:00", "17:00")
        assert is_working_day(SUNDAY, schedule)

    def test_unknown_weekday_fails_closed_when_configured(self):
        """Test the fail-closed policy."""
        calculator = SlotCalculator(fail_open_on_unknown_weekday=False)
        schedule = WorkSchedule("Funday", "Friday", "09:00", "17:00")

        assert not calculator.is_working_day(FRIDAY, schedule)

    def test_missing_range_is_not_working(self):
        """Test a schedule without working days."""
        schedule = WorkSchedule(None, None, "09:00", "17:00")
        assert not is_working_day(FRIDAY, schedule)


class TestResolveDuration:
    """Tests for duration resolution."""

    def test_first_usable_value_wins(self):
        """Test values are tried in order."""
        calculator = SlotCalculator()

        assert calculator.resolve_duration(None, "45 minutes", "30") == 45
        assert calculator.resolve_duration("n/a", None, "1 hour") == 60
        assert calculator.resolve_duration(0, -15, 20) == 20

    def test_falls_back_to_default(self):
        """Test the configured default when nothing is usable."""
        calculator = SlotCalculator(default_duration_minutes=25)
        assert calculator.resolve_duration(None, "", None) == 25


class TestValidateBooking:
    """Tests for the write-time booking check."""

    def test_free_interval_passes(self):
        """Test an interval adjacent to an appointment is accepted."""
        calculator = SlotCalculator()
        day = snapshot([appointment(1, "10:00", "10:30")])

        calculator.validate_booking(ClockInterval(630, 660), day)
        calculator.validate_booking(ClockInterval(570, 600), day)

    def test_conflict_reports_overlapping_intervals(self):
        """Test a conflicting request raises with the conflicting records."""
        calculator = SlotCalculator()
        day = snapshot([appointment(1, "10:00", "10:30")])

        with pytest.raises(SchedulingConflictError) as exc_info:
            calculator.validate_booking(ClockInterval(615, 645), day)

        assert [busy.reference for busy in exc_info.value.conflicts] == [1]

    def test_blocked_period_conflicts(self):
        """Test blocked time cannot be booked."""
        calculator = SlotCalculator()
        day = snapshot(blocked=[BlockedPeriod("D001", FRIDAY, "12:00", "13:00")])

        with pytest.raises(SchedulingConflictError):
            calculator.validate_booking(ClockInterval(750, 780), day)

    def test_cancelled_appointment_does_not_conflict(self):
        """Test a cancelled appointment frees its time."""
        calculator = SlotCalculator()
        day = snapshot([appointment(1, "10:00", "10:30", status="cancelled")])

        calculator.validate_booking(ClockInterval(600, 630), day)

    def test_slot_grid_enforcement(self):
        """Test off-grid requests are refused when the grid is enforced."""
        calculator = SlotCalculator()
        schedule = WorkSchedule("Monday", "Friday", "09:00", "17:00")
        day = snapshot()

        calculator.validate_booking(
            ClockInterval(540, 570), day, schedule=schedule, duration=30, enforce_slot_grid=True
        )

        with pytest.raises(SchedulingConflictError, match="not a bookable slot"):
            calculator.validate_booking(
                ClockInterval(555, 585), day, schedule=schedule, duration=30, enforce_slot_grid=True
            )

    def test_slot_grid_matches_overnight_slots(self):
        """Test grid matching folds slots after midnight onto the day clock."""
        calculator = SlotCalculator()
        schedule = WorkSchedule("Monday", "Friday", "22:00", "02:00")

        calculator.validate_booking(
            ClockInterval.from_strings("00:00", "01:00"),
            snapshot(),
            schedule=schedule,
            duration=60,
            enforce_slot_grid=True,
        )

    def test_slot_grid_requires_schedule(self):
        """Test grid enforcement without a schedule is a programming error."""
        calculator = SlotCalculator()

        with pytest.raises(ValueError):
            calculator.validate_booking(ClockInterval(540, 570), snapshot(), enforce_slot_grid=True)


def test_candidate_slots_are_candidate_slot_instances():
    """Test generated slots carry the display helper."""
    slot = generate_slots("09:00", "10:00", 60)[0]

    assert isinstance(slot, CandidateSlot)
    assert slot.format_display() == "09:00 – 10:00 (60 min)"
