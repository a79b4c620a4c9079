"""Tests for the reschedule workflow state machine."""
import threading
from datetime import datetime
from unittest.mock import Mock

import pytest

from medflow.models import RescheduleForm, TimeSlot
from medflow.state import InvalidTransitionError, RescheduleState
from medflow.store import AppointmentStore, StoreError
from medflow.workflow import GENERIC_ERROR_MESSAGE, PastDateError, RescheduleWorkflow, SlotUnavailableError
from tests.utils.dates import BEFORE_FIXTURE_DATES, THURSDAY, WEDNESDAY, at


@pytest.fixture
def rescheduling_store(store, make_appointment):
    """Store with apt-1001 (Wed 08:00) and apt-2002 (Thu 09:00) to be moved."""
    store.add(make_appointment("apt-2002", 9, duration=60, date_time=at(9, day=THURSDAY)))
    return store


@pytest.fixture
def workflow(rescheduling_store, short_day):
    return RescheduleWorkflow(
        "apt-2002",
        rescheduling_store,
        constraints=short_day,
        patient_name="Ion Popescu",
        patient_email="ion.popescu@example.ro",
        clock=lambda: BEFORE_FIXTURE_DATES
    )


@pytest.fixture
def mock_store():
    store = Mock(spec=AppointmentStore)
    store.fetch_appointments_for_date.return_value = []
    store.submit_reschedule.return_value = True
    return store


def make_workflow(store, constraints, **kwargs):
    kwargs.setdefault("clock", lambda: BEFORE_FIXTURE_DATES)
    return RescheduleWorkflow("apt-2002", store, constraints=constraints, **kwargs)


def advance_to_form(workflow, hour=9):
    workflow.select_date(WEDNESDAY)
    slot = next(s for s in workflow.available_slots if s.start.hour == hour)
    workflow.select_slot(slot)
    return slot


class TestDateSelection:
    """Picking a date loads its slots."""

    def test_starts_in_date_selection(self, workflow):
        assert workflow.state == RescheduleState.DATE_SELECTION
        assert workflow.selected_date is None
        assert workflow.selected_slot is None
        assert workflow.slots == []

    def test_select_date_loads_slots(self, workflow):
        available = workflow.select_date(WEDNESDAY)

        assert workflow.state == RescheduleState.TIME_SELECTION
        assert workflow.selected_date == WEDNESDAY
        assert [s.start for s in workflow.slots] == [at(8), at(9)]
        assert [s.start for s in available] == [at(9)]

    def test_passes_through_loading(self, workflow):
        seen = []
        workflow.on("state_changed", lambda previous, current: seen.append((previous, current)))

        workflow.select_date(WEDNESDAY)

        assert seen == [
            (RescheduleState.DATE_SELECTION, RescheduleState.LOADING),
            (RescheduleState.LOADING, RescheduleState.TIME_SELECTION),
        ]

    def test_own_appointment_does_not_block(self, rescheduling_store, short_day):
        workflow = RescheduleWorkflow(
            "apt-1001", rescheduling_store, constraints=short_day, clock=lambda: BEFORE_FIXTURE_DATES
        )

        available = workflow.select_date(WEDNESDAY)

        assert [s.start for s in available] == [at(8), at(9)]

    def test_accepts_datetime(self, workflow):
        workflow.select_date(at(15, 30))
        assert workflow.selected_date == WEDNESDAY

    def test_fetch_failure_still_reaches_time_selection(self, mock_store, short_day):
        mock_store.fetch_appointments_for_date.side_effect = StoreError("connection refused")
        workflow = make_workflow(mock_store, short_day)

        workflow.select_date(WEDNESDAY)

        assert workflow.state == RescheduleState.TIME_SELECTION
        assert [s.start for s in workflow.slots] == [at(8), at(9)]
        assert workflow.error_message == ""

    def test_demo_mode_skips_store(self, mock_store, short_day):
        workflow = make_workflow(mock_store, short_day, demo_mode=True)

        workflow.select_date(WEDNESDAY)

        mock_store.fetch_appointments_for_date.assert_not_called()
        assert len(workflow.slots) == 2

    def test_non_work_day_gives_empty_list(self, workflow):
        assert workflow.select_date(datetime(2030, 1, 5)) == []
        assert workflow.state == RescheduleState.TIME_SELECTION

    def test_choose_another_date_from_slot_list(self, workflow):
        workflow.select_date(WEDNESDAY)
        workflow.select_date(THURSDAY)

        assert workflow.selected_date == THURSDAY
        assert workflow.state == RescheduleState.TIME_SELECTION

    def test_select_date_rejected_from_form(self, workflow):
        advance_to_form(workflow)

        with pytest.raises(InvalidTransitionError):
            workflow.select_date(THURSDAY)
        assert workflow.state == RescheduleState.FORM_INPUT

    def test_past_date_rejected(self, mock_store, short_day):
        workflow = make_workflow(mock_store, short_day, clock=lambda: datetime(2030, 1, 10, 12, 0))

        with pytest.raises(PastDateError):
            workflow.select_date(WEDNESDAY)

        assert workflow.state == RescheduleState.DATE_SELECTION
        assert workflow.selected_date is None
        mock_store.fetch_appointments_for_date.assert_not_called()

    def test_today_accepted(self, mock_store, short_day):
        workflow = make_workflow(mock_store, short_day, clock=lambda: at(8, 30))

        assert [s.start for s in workflow.select_date(WEDNESDAY)] == [at(9)]

    def test_past_date_from_slot_list_keeps_slots(self, workflow):
        workflow.select_date(WEDNESDAY)

        with pytest.raises(PastDateError):
            workflow.select_date(datetime(2029, 12, 31))

        assert workflow.state == RescheduleState.TIME_SELECTION
        assert workflow.selected_date == WEDNESDAY
        assert len(workflow.slots) == 2

    def test_reset_while_loading_drops_late_slots(self, mock_store, short_day):
        workflow = make_workflow(mock_store, short_day)

        def fetch_then_reset(day):
            workflow.reset()
            return []

        mock_store.fetch_appointments_for_date.side_effect = fetch_then_reset

        assert workflow.select_date(WEDNESDAY) == []
        assert workflow.state == RescheduleState.DATE_SELECTION
        assert workflow.slots == []
        assert workflow.selected_date is None


class TestSlotSelection:
    """Choosing a slot moves to the confirmation form."""

    def test_select_slot(self, workflow):
        slot = advance_to_form(workflow)

        assert workflow.state == RescheduleState.FORM_INPUT
        assert workflow.selected_slot == slot

    def test_unavailable_slot_rejected(self, workflow):
        workflow.select_date(WEDNESDAY)
        taken = workflow.slots[0]

        with pytest.raises(SlotUnavailableError):
            workflow.select_slot(taken)
        assert workflow.state == RescheduleState.TIME_SELECTION

    def test_unknown_slot_rejected(self, workflow):
        workflow.select_date(WEDNESDAY)
        foreign = TimeSlot(start=at(13), end=at(14), available=True)

        with pytest.raises(SlotUnavailableError):
            workflow.select_slot(foreign)

    def test_select_slot_before_date_rejected(self, workflow):
        slot = TimeSlot(start=at(9), end=at(10), available=True)
        with pytest.raises(InvalidTransitionError):
            workflow.select_slot(slot)

    def test_back_to_date_selection_discards_slots(self, workflow):
        workflow.select_date(WEDNESDAY)

        workflow.back_to_date_selection()

        assert workflow.state == RescheduleState.DATE_SELECTION
        assert workflow.slots == []

    def test_back_to_time_selection_keeps_slots(self, workflow):
        advance_to_form(workflow)

        workflow.back_to_time_selection()

        assert workflow.state == RescheduleState.TIME_SELECTION
        assert workflow.selected_date == WEDNESDAY
        assert len(workflow.slots) == 2


class TestSubmission:
    """Confirming the form."""

    def test_successful_submit(self, workflow, rescheduling_store):
        advance_to_form(workflow)

        assert workflow.submit(RescheduleForm(reason="Work trip")) is True

        assert workflow.state == RescheduleState.SUCCESS
        moved = rescheduling_store.get_appointment("apt-2002")
        assert moved.date_time == at(9)

    def test_request_built_from_selection(self, workflow):
        advance_to_form(workflow)

        workflow.submit()

        request = workflow.last_request
        assert request.appointment_id == "apt-2002"
        assert request.new_date_time == at(9)
        assert request.patient_name == "Ion Popescu"
        assert request.reason is None

    def test_store_refusal_goes_to_error(self, workflow, rescheduling_store, make_appointment):
        advance_to_form(workflow)
        rescheduling_store.add(make_appointment("apt-3003", 9, 15, duration=30))

        assert workflow.submit() is False

        assert workflow.state == RescheduleState.ERROR
        assert workflow.error_message == GENERIC_ERROR_MESSAGE

    def test_store_exception_goes_to_error_then_reset_clears(self, mock_store, short_day):
        mock_store.submit_reschedule.side_effect = StoreError("HTTP 500 submitting reschedule")
        workflow = make_workflow(mock_store, short_day)
        seen = []
        workflow.on("state_changed", lambda previous, current: seen.append(current))
        advance_to_form(workflow)

        assert workflow.submit() is False

        assert seen[-2:] == [RescheduleState.LOADING, RescheduleState.ERROR]
        assert workflow.error_message == GENERIC_ERROR_MESSAGE

        workflow.reset()

        assert workflow.state == RescheduleState.DATE_SELECTION
        assert workflow.selected_date is None
        assert workflow.selected_slot is None
        assert workflow.slots == []
        assert workflow.error_message == ""

    def test_submit_outside_form_rejected(self, workflow):
        workflow.select_date(WEDNESDAY)
        with pytest.raises(InvalidTransitionError):
            workflow.submit()

    def test_second_confirm_while_loading_rejected(self, mock_store, short_day):
        entered = threading.Event()
        release = threading.Event()

        def slow_submit(request):
            entered.set()
            release.wait(5)
            return True

        mock_store.submit_reschedule.side_effect = slow_submit
        workflow = make_workflow(mock_store, short_day)
        advance_to_form(workflow)

        first = threading.Thread(target=workflow.submit)
        first.start()
        assert entered.wait(5)

        assert workflow.state == RescheduleState.LOADING
        with pytest.raises(InvalidTransitionError):
            workflow.submit()

        release.set()
        first.join(5)

        assert mock_store.submit_reschedule.call_count == 1
        assert workflow.state == RescheduleState.SUCCESS

    def test_retry_from_error(self, mock_store, short_day):
        mock_store.submit_reschedule.return_value = False
        workflow = make_workflow(mock_store, short_day)
        advance_to_form(workflow)
        workflow.submit()

        workflow.retry()

        assert workflow.state == RescheduleState.DATE_SELECTION

    def test_schedule_another_from_success(self, workflow):
        advance_to_form(workflow)
        workflow.submit()

        workflow.schedule_another()

        assert workflow.state == RescheduleState.DATE_SELECTION
        assert workflow.selected_slot is None

    def test_retry_only_from_error(self, workflow):
        advance_to_form(workflow)
        workflow.submit()

        with pytest.raises(InvalidTransitionError):
            workflow.retry()


class TestHooks:
    """Presentation callbacks."""

    def test_events_fire_with_payload(self, workflow):
        calls = []
        workflow.on("date_selected", lambda day: calls.append(("date", day)))
        workflow.on("slot_selected", lambda slot: calls.append(("slot", slot.start)))
        workflow.on("form_submitted", lambda request: calls.append(("submit", request.appointment_id)))
        workflow.on("reset", lambda: calls.append(("reset",)))

        advance_to_form(workflow)
        workflow.submit()
        workflow.reset()

        assert calls == [
            ("date", WEDNESDAY),
            ("slot", at(9)),
            ("submit", "apt-2002"),
            ("reset",),
        ]

    def test_unknown_event_rejected(self, workflow):
        with pytest.raises(ValueError):
            workflow.on("slot_clicked", lambda slot: None)

    def test_reset_from_every_state(self, workflow):
        for step in (lambda: None, lambda: workflow.select_date(WEDNESDAY), lambda: advance_to_form(workflow)):
            workflow.reset()
            step()
            workflow.reset()
            assert workflow.state == RescheduleState.DATE_SELECTION
