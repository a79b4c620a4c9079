"""Slot availability for a single calendar day.

Slots are enumerated from the clinic's working window and checked against the
day's bookings with a strict half-open overlap test:
``slot_start < appt_end and slot_end > appt_start``.
"""
import random
from datetime import date as date_type, datetime, time, timedelta
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Union

from medflow import config
from medflow.models import Appointment, SchedulingConstraints, TimeSlot

DateLike = Union[date_type, datetime]

SLOT_BOOKED = "Slot already booked"
BEYOND_BOOKING_WINDOW = "Too far in the future"


def weekday_index(day: DateLike) -> int:
    """Weekday with 0=Sunday..6=Saturday."""
    return day.isoweekday() % 7


def _as_date(day: DateLike) -> date_type:
    return day.date() if isinstance(day, datetime) else day


def _iter_slot_bounds(
    day: date_type,
    constraints: SchedulingConstraints
) -> Iterator[tuple]:
    """Yield (start, end) for every slot start inside the working window."""
    step = timedelta(minutes=constraints.slot_duration)
    current = datetime.combine(day, time(hour=constraints.work_start_hour))
    # work_end_hour may be 24, so build the bound from midnight
    window_end = datetime.combine(day, time.min) + timedelta(hours=constraints.work_end_hour)

    while current < window_end:
        yield current, current + step
        current += step


def find_conflict(
    start: datetime,
    end: datetime,
    appointments: Iterable[Appointment],
    default_duration: int
) -> Optional[Appointment]:
    """First appointment whose interval overlaps [start, end), if any."""
    for appointment in appointments:
        appt_start = appointment.date_time
        appt_end = appointment.end_time(default_duration)
        if start < appt_end and end > appt_start:
            return appointment
    return None


def is_time_slot_occupied(
    start: datetime,
    end: datetime,
    appointments: Iterable[Appointment],
    default_duration: int = config.DEFAULT_APPOINTMENT_DURATION
) -> bool:
    """Check if [start, end) overlaps any of the given appointments."""
    return find_conflict(start, end, appointments, default_duration) is not None


def compute_available_slots(
    day: DateLike,
    constraints: SchedulingConstraints,
    booked_appointments: Iterable[Appointment],
    exclude_appointment_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> List[TimeSlot]:
    """
    Compute every candidate slot for one day, flagged available or taken.

    Args:
        day: Calendar day; any time-of-day component is ignored
        constraints: Work days, work hours and slot duration
        booked_appointments: Appointments already booked for that day
        exclude_appointment_id: Appointment being rescheduled; it never
            blocks a slot
        now: Evaluation instant (defaults to the local wall clock)

    Returns:
        Slots in chronological order. Empty on non-work days. For today,
        slots starting at or before ``now`` are left out entirely.

    Example:
        >>> constraints = SchedulingConstraints(
        ...     work_days=[1, 2, 3, 4, 5], work_start_hour=8,
        ...     work_end_hour=10, slot_duration=60)
        >>> [s.available for s in compute_available_slots(
        ...     datetime(2030, 1, 2), constraints, [], now=datetime(2030, 1, 1))]
        [True, True]
    """
    day = _as_date(day)
    if weekday_index(day) not in constraints.work_days:
        return []

    now = now or datetime.now()
    is_today = day == now.date()

    blocking = [
        appointment for appointment in booked_appointments
        if exclude_appointment_id is None or appointment.id != exclude_appointment_id
    ]

    slots = []
    for start, end in _iter_slot_bounds(day, constraints):
        if is_today and start <= now:
            continue

        conflict = find_conflict(start, end, blocking, constraints.slot_duration)
        slots.append(TimeSlot(
            start=start,
            end=end,
            available=conflict is None,
            appointment_id=conflict.id if conflict else None,
            reason=SLOT_BOOKED if conflict else None
        ))

    return slots


def generate_demo_slots(
    day: DateLike,
    constraints: SchedulingConstraints,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None
) -> List[TimeSlot]:
    """
    Synthetic availability for when real bookings cannot be fetched.

    Not a correctness guarantee: roughly 30% of slots are randomly shown as
    taken, and past slots stay in the list marked unavailable.
    """
    day = _as_date(day)
    if weekday_index(day) not in constraints.work_days:
        return []

    now = now or datetime.now()
    rng = rng or random.Random()

    return [
        TimeSlot(
            start=start,
            end=end,
            available=rng.random() > config.DEMO_UNAVAILABLE_RATIO and start > now
        )
        for start, end in _iter_slot_bounds(day, constraints)
    ]


def apply_booking_window(
    slots: Iterable[TimeSlot],
    now: datetime,
    max_advance_days: int = config.MAX_ADVANCE_BOOKING_DAYS
) -> List[TimeSlot]:
    """Mark free slots starting more than ``max_advance_days`` after ``now`` as unavailable."""
    horizon = now + timedelta(days=max_advance_days)
    return [
        slot.model_copy(update={"available": False, "reason": BEYOND_BOOKING_WINDOW})
        if slot.available and slot.start > horizon else slot
        for slot in slots
    ]


class TimeOfDay(str, Enum):
    """Time of day preferences."""
    MORNING = "morning"  # Before 12:00
    AFTERNOON = "afternoon"  # 12:00 and after
    ANY = "any"


class TimeFilter:
    """Narrow a computed slot list for display."""

    MORNING_CUTOFF = 12  # 12:00 (noon)

    def filter_by_time_of_day(
        self,
        slots: List[TimeSlot],
        preference: TimeOfDay
    ) -> List[TimeSlot]:
        """
        Filter slots by time of day preference.

        Args:
            slots: Computed slots
            preference: Morning, afternoon, or any

        Returns:
            Filtered slots, order preserved
        """
        if preference == TimeOfDay.ANY:
            return list(slots)

        if preference == TimeOfDay.MORNING:
            return [s for s in slots if s.start.hour < self.MORNING_CUTOFF]
        return [s for s in slots if s.start.hour >= self.MORNING_CUTOFF]

    @staticmethod
    def available_only(slots: List[TimeSlot]) -> List[TimeSlot]:
        return [s for s in slots if s.available]

    @staticmethod
    def limit(slots: List[TimeSlot], max_slots: int) -> List[TimeSlot]:
        if max_slots < 0:
            raise ValueError("max_slots must be >= 0")
        return list(slots)[:max_slots]
