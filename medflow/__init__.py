"""MedFlow scheduling core: slot availability and the reschedule workflow."""
from medflow.availability import compute_available_slots
from medflow.models import Appointment, AppointmentStatus, SchedulingConstraints, TimeSlot
from medflow.scheduling import (
    get_available_slots_in_range,
    get_available_time_slots,
    get_default_constraints,
    get_recommended_slots,
)
from medflow.state import RescheduleState
from medflow.workflow import RescheduleWorkflow

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "RescheduleState",
    "RescheduleWorkflow",
    "SchedulingConstraints",
    "TimeSlot",
    "compute_available_slots",
    "get_available_slots_in_range",
    "get_available_time_slots",
    "get_default_constraints",
    "get_recommended_slots",
]
