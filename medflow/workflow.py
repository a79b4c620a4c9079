"""Reschedule workflow driven by UI events.

The workflow owns the selection state (date, slot, fetched slots) and moves
through RescheduleState. Presentation code calls the event methods and
subscribes to hooks with ``on(event, callback)``:

- ``date_selected(day)``
- ``slot_selected(slot)``
- ``form_submitted(request)``
- ``reset()``
- ``state_changed(previous, current)``
"""
import threading
from collections import defaultdict
from datetime import date as date_type, datetime
from typing import Callable, Dict, List, Optional

from medflow.availability import TimeFilter
from medflow.logging_config import get_logger
from medflow.models import RescheduleForm, RescheduleRequest, SchedulingConstraints, TimeSlot
from medflow.scheduling import get_available_time_slots, get_default_constraints, submit_reschedule_request
from medflow.state import INITIAL_STATE, InvalidTransitionError, RescheduleState, validate_transition
from medflow.store import AppointmentStore

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "Failed to reschedule the appointment. Please try again."

EVENTS = frozenset({"date_selected", "slot_selected", "form_submitted", "reset", "state_changed"})


class SlotUnavailableError(ValueError):
    """The chosen slot is not among the available slots of the selected date."""
    pass


class PastDateError(ValueError):
    """The selected date is before today."""
    pass


class RescheduleWorkflow:
    """
    State machine for rescheduling one appointment.

    A single submission can be in flight at a time: confirming moves the
    workflow to LOADING, and LOADING does not accept another confirm.
    """

    def __init__(
        self,
        appointment_id: str,
        store: AppointmentStore,
        constraints: Optional[SchedulingConstraints] = None,
        demo_mode: Optional[bool] = None,
        patient_name: Optional[str] = None,
        patient_email: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.appointment_id = appointment_id
        self.store = store
        self.constraints = constraints or get_default_constraints()
        self.demo_mode = demo_mode
        self.patient_name = patient_name
        self.patient_email = patient_email
        self._clock = clock

        self.state = INITIAL_STATE
        self.selected_date: Optional[date_type] = None
        self.selected_slot: Optional[TimeSlot] = None
        self.slots: List[TimeSlot] = []
        self.error_message = ""
        self.last_request: Optional[RescheduleRequest] = None

        self._listeners: Dict[str, List[Callable]] = defaultdict(list)
        self._lock = threading.RLock()
        # Bumped on every reset so late results from an abandoned fetch are dropped
        self._generation = 0

    @property
    def available_slots(self) -> List[TimeSlot]:
        """Slots the patient can pick (what the slot list shows)."""
        return TimeFilter.available_only(self.slots)

    # Hooks

    def on(self, event: str, callback: Callable) -> Callable:
        """Register ``callback`` for ``event``. Returns the callback."""
        if event not in EVENTS:
            raise ValueError(f"Unknown workflow event: {event}")
        self._listeners[event].append(callback)
        return callback

    def _emit(self, event: str, *args):
        for callback in list(self._listeners[event]):
            callback(*args)

    # Transitions

    def _require_state(self, event: str, *allowed: RescheduleState):
        if self.state not in allowed:
            raise InvalidTransitionError(self.state, self._target_of(event), event)

    @staticmethod
    def _target_of(event: str) -> RescheduleState:
        return {
            "select_date": RescheduleState.LOADING,
            "select_slot": RescheduleState.FORM_INPUT,
            "submit": RescheduleState.LOADING,
            "back_to_time_selection": RescheduleState.TIME_SELECTION,
        }.get(event, RescheduleState.DATE_SELECTION)

    def _set_state(self, new_state: RescheduleState):
        previous = self.state
        if not validate_transition(previous, new_state):
            raise InvalidTransitionError(previous, new_state)
        self.state = new_state
        logger.debug(
            "reschedule_state_changed",
            appointment_id=self.appointment_id,
            previous=previous.value,
            current=new_state.value
        )
        self._emit("state_changed", previous, new_state)

    def _clear_selection(self):
        self.selected_date = None
        self.selected_slot = None
        self.slots = []
        self.error_message = ""

    # Events

    def select_date(self, day: date_type) -> List[TimeSlot]:
        """
        Load slots for ``day`` and move to TIME_SELECTION.

        Fetch failures never reach the patient: the slot list falls back to
        demo availability.

        Raises:
            PastDateError: ``day`` is before today; the state is unchanged
            InvalidTransitionError: outside DATE_SELECTION and TIME_SELECTION
        """
        if isinstance(day, datetime):
            day = day.date()

        with self._lock:
            self._require_state("select_date", RescheduleState.DATE_SELECTION, RescheduleState.TIME_SELECTION)
            today = self._clock().date()
            if day < today:
                raise PastDateError(f"Cannot reschedule to {day.isoformat()}, it is before {today.isoformat()}")
            self.slots = []
            self.selected_slot = None
            self.selected_date = day
            generation = self._generation
            self._set_state(RescheduleState.LOADING)

        self._emit("date_selected", day)

        slots = get_available_time_slots(
            day,
            self.constraints,
            self.store,
            exclude_appointment_id=self.appointment_id,
            demo_mode=self.demo_mode,
            now=self._clock()
        )

        with self._lock:
            if generation != self._generation or self.state != RescheduleState.LOADING:
                logger.info("stale_slot_fetch_dropped", appointment_id=self.appointment_id, day=str(day))
                return []
            self.slots = slots
            self._set_state(RescheduleState.TIME_SELECTION)

        return self.available_slots

    def select_slot(self, slot: TimeSlot):
        with self._lock:
            self._require_state("select_slot", RescheduleState.TIME_SELECTION)
            if slot not in self.available_slots:
                raise SlotUnavailableError(f"Slot {slot.label} is not available")
            self.selected_slot = slot
            self._set_state(RescheduleState.FORM_INPUT)

        self._emit("slot_selected", slot)

    def submit(self, form: Optional[RescheduleForm] = None) -> bool:
        """
        Confirm the reschedule.

        Returns:
            True when the store accepted it (SUCCESS), False otherwise (ERROR)

        Raises:
            InvalidTransitionError: outside FORM_INPUT, including a second
                confirm while the first is still loading
        """
        with self._lock:
            self._require_state("submit", RescheduleState.FORM_INPUT)
            form = form or RescheduleForm(
                patient_name=self.patient_name or "",
                patient_email=self.patient_email or ""
            )
            request = RescheduleRequest(
                appointment_id=self.appointment_id,
                new_date_time=datetime.combine(self.selected_date, self.selected_slot.start.time()),
                reason=form.reason,
                patient_name=form.patient_name,
                patient_email=form.patient_email
            )
            self.last_request = request
            generation = self._generation
            self._set_state(RescheduleState.LOADING)

        self._emit("form_submitted", request)

        try:
            accepted = submit_reschedule_request(request, self.store)
        except Exception as e:
            logger.error(
                "reschedule_submit_failed",
                appointment_id=self.appointment_id,
                error=str(e),
                exc_info=True
            )
            accepted = False

        with self._lock:
            if generation != self._generation or self.state != RescheduleState.LOADING:
                return accepted
            if accepted:
                self._set_state(RescheduleState.SUCCESS)
            else:
                self.error_message = GENERIC_ERROR_MESSAGE
                self._set_state(RescheduleState.ERROR)

        return accepted

    def back_to_date_selection(self):
        """Leave the slot list; fetched slots are discarded."""
        with self._lock:
            self._require_state("back_to_date_selection", RescheduleState.TIME_SELECTION)
            self.slots = []
            self.selected_slot = None
            self._set_state(RescheduleState.DATE_SELECTION)

    def back_to_time_selection(self):
        """Leave the form; date and slot list are kept."""
        with self._lock:
            self._require_state("back_to_time_selection", RescheduleState.FORM_INPUT)
            self._set_state(RescheduleState.TIME_SELECTION)

    def retry(self):
        """From ERROR, start over at date selection."""
        with self._lock:
            self._require_state("retry", RescheduleState.ERROR)
        self.reset()

    def schedule_another(self):
        """From SUCCESS, start over with a clean selection."""
        with self._lock:
            self._require_state("schedule_another", RescheduleState.SUCCESS)
        self.reset()

    def reset(self):
        """Back to DATE_SELECTION from any state, clearing all selection state."""
        with self._lock:
            self._generation += 1
            self._clear_selection()
            self._set_state(RescheduleState.DATE_SELECTION)

        self._emit("reset")
