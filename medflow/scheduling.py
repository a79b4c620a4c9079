"""Scheduling service: the call sites between the store and the calculator.

Fetch failures while loading availability are masked with demo slots so the
patient always gets a slot list; they are logged, never raised.
"""
import random
from datetime import date as date_type, datetime, timedelta
from typing import List, Optional

from medflow import config
from medflow.availability import (
    apply_booking_window,
    compute_available_slots,
    generate_demo_slots,
    weekday_index,
)
from medflow.logging_config import get_logger
from medflow.models import RescheduleRequest, SchedulingConstraints, TimeSlot
from medflow.store import AppointmentStore

logger = get_logger(__name__)


def get_default_constraints() -> SchedulingConstraints:
    """Clinic default: Monday to Friday, 08:00-18:00, 45-minute slots."""
    return SchedulingConstraints(**config.DEFAULT_CONSTRAINTS)


def get_available_time_slots(
    day: date_type,
    constraints: SchedulingConstraints,
    store: AppointmentStore,
    exclude_appointment_id: Optional[str] = None,
    demo_mode: Optional[bool] = None,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None
) -> List[TimeSlot]:
    """
    Slots for ``day`` against the store's bookings.

    Args:
        day: Calendar day to compute
        constraints: Clinic schedule
        store: Appointment store to read bookings from
        exclude_appointment_id: Appointment being rescheduled
        demo_mode: Force demo slots; defaults to MEDFLOW_DEMO_MODE
        now: Evaluation instant (defaults to wall clock)
        rng: Random source for demo slots

    Returns:
        Computed slots, or synthetic demo slots when demo mode is on or the
        store cannot be read
    """
    if demo_mode is None:
        demo_mode = config.is_demo_mode()

    if demo_mode:
        return generate_demo_slots(day, constraints, now=now, rng=rng)

    try:
        appointments = store.fetch_appointments_for_date(day)
    except Exception as e:
        logger.warning(
            "availability_fetch_failed",
            day=str(day),
            error=str(e),
            fallback="demo_slots"
        )
        return generate_demo_slots(day, constraints, now=now, rng=rng)

    return compute_available_slots(
        day,
        constraints,
        appointments,
        exclude_appointment_id=exclude_appointment_id,
        now=now
    )


def submit_reschedule_request(request: RescheduleRequest, store: AppointmentStore) -> bool:
    """Forward a reschedule to the store. Store exceptions propagate."""
    logger.info(
        "reschedule_submitted",
        appointment_id=request.appointment_id,
        new_date_time=request.new_date_time.isoformat()
    )
    return store.submit_reschedule(request)


def get_available_slots_in_range(
    store: AppointmentStore,
    constraints: SchedulingConstraints,
    start_date: date_type,
    end_date: date_type,
    max_slots: int = config.MAX_RANGE_SLOTS,
    exclude_appointment_id: Optional[str] = None,
    now: Optional[datetime] = None,
    max_advance_days: int = config.MAX_ADVANCE_BOOKING_DAYS
) -> List[TimeSlot]:
    """
    Free future slots from ``start_date`` to ``end_date`` (both inclusive).

    Args:
        store: Appointment store to read bookings from
        constraints: Clinic schedule
        start_date: First day to search
        end_date: Last day to search
        max_slots: Stop after this many slots
        exclude_appointment_id: Appointment being rescheduled
        now: Evaluation instant (defaults to wall clock)
        max_advance_days: Booking window; later slots are never returned

    Returns:
        Available slots in chronological order, at most ``max_slots``.
        Non-work days are not fetched. Days whose bookings cannot be fetched
        are logged and skipped; demo slots are never used here.

    Raises:
        ValueError: If ``max_slots`` is negative
    """
    if max_slots < 0:
        raise ValueError("max_slots must be >= 0")

    now = now or datetime.now()
    last_bookable_day = (now + timedelta(days=max_advance_days)).date()
    end_date = min(end_date, last_bookable_day)

    found: List[TimeSlot] = []
    current = start_date
    while current <= end_date and len(found) < max_slots:
        if weekday_index(current) not in constraints.work_days:
            current += timedelta(days=1)
            continue

        try:
            appointments = store.fetch_appointments_for_date(current)
        except Exception as e:
            logger.warning("range_fetch_failed", day=str(current), error=str(e))
        else:
            slots = compute_available_slots(
                current,
                constraints,
                appointments,
                exclude_appointment_id=exclude_appointment_id,
                now=now
            )
            slots = apply_booking_window(slots, now, max_advance_days)
            found.extend(slot for slot in slots if slot.available and slot.start > now)
        current += timedelta(days=1)

    return found[:max_slots]


def find_next_available_slot(
    store: AppointmentStore,
    constraints: SchedulingConstraints,
    start_date: Optional[date_type] = None,
    days_ahead: int = config.NEXT_SLOT_SEARCH_DAYS,
    exclude_appointment_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> Optional[TimeSlot]:
    """Earliest free slot from ``start_date`` over the next ``days_ahead`` days."""
    now = now or datetime.now()
    start_date = start_date or now.date()

    slots = get_available_slots_in_range(
        store,
        constraints,
        start_date,
        start_date + timedelta(days=days_ahead),
        max_slots=1,
        exclude_appointment_id=exclude_appointment_id,
        now=now
    )
    return slots[0] if slots else None


def get_recommended_slots(
    store: AppointmentStore,
    constraints: SchedulingConstraints,
    max_recommendations: int = config.DEFAULT_RECOMMENDATIONS,
    exclude_appointment_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> List[TimeSlot]:
    """
    Suggest up to ``max_recommendations`` slots over the next two weeks.

    Weekday slots starting between 09:00 and 11:59 come first; the rest of
    the list is filled with the earliest other free slots.
    """
    now = now or datetime.now()
    pool = get_available_slots_in_range(
        store,
        constraints,
        now.date(),
        now.date() + timedelta(days=config.RECOMMENDATION_SEARCH_DAYS),
        max_slots=config.RECOMMENDATION_POOL_SIZE,
        exclude_appointment_id=exclude_appointment_id,
        now=now
    )

    first_hour, last_hour = config.PREFERRED_HOURS
    preferred = [
        slot for slot in pool
        if first_hour <= slot.start.hour <= last_hour and 1 <= weekday_index(slot.start) <= 5
    ][:max_recommendations]
    others = [slot for slot in pool if slot not in preferred]

    return preferred + others[:max_recommendations - len(preferred)]


def is_slot_available(
    store: AppointmentStore,
    when: datetime,
    constraints: SchedulingConstraints,
    exclude_appointment_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> bool:
    """True if a free, bookable slot starts within one minute of ``when``."""
    now = now or datetime.now()
    try:
        appointments = store.fetch_appointments_for_date(when.date())
    except Exception as e:
        logger.warning("slot_check_failed", when=when.isoformat(), error=str(e))
        return False

    slots = compute_available_slots(
        when.date(),
        constraints,
        appointments,
        exclude_appointment_id=exclude_appointment_id,
        now=now
    )
    slots = apply_booking_window(slots, now)
    tolerance = timedelta(minutes=1)
    return any(
        slot.available and abs(slot.start - when) < tolerance
        for slot in slots
    )
