"""Shared test fixtures."""
import pytest

from medflow.models import Appointment, SchedulingConstraints
from medflow.store import InMemoryAppointmentStore
from tests.utils.dates import at


@pytest.fixture(autouse=True)
def setup_env(monkeypatch):
    """Keep demo mode off unless a test turns it on."""
    monkeypatch.delenv("MEDFLOW_DEMO_MODE", raising=False)
    yield


@pytest.fixture
def short_day() -> SchedulingConstraints:
    """Mon-Fri, 08:00-10:00, one-hour slots."""
    return SchedulingConstraints(
        work_days=[1, 2, 3, 4, 5],
        work_start_hour=8,
        work_end_hour=10,
        slot_duration=60
    )


@pytest.fixture
def make_appointment():
    """Build an appointment starting on the Wednesday fixture date."""
    def _create(appointment_id: str, hour: int, minute: int = 0, **kwargs) -> Appointment:
        fields = {
            "id": appointment_id,
            "patient_name": "Ion Popescu",
            "patient_email": "ion.popescu@example.ro",
            "date_time": at(hour, minute),
        }
        fields.update(kwargs)
        return Appointment(**fields)
    return _create


@pytest.fixture
def store(make_appointment) -> InMemoryAppointmentStore:
    """Store with one booking on Wednesday 08:00-09:00."""
    store = InMemoryAppointmentStore()
    store.add(make_appointment("apt-1001", 8, duration=60))
    return store
