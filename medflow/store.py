"""Appointment store: the persistence boundary the scheduling core consumes.

Two implementations:
- HttpAppointmentStore talks to the appointment API over HTTP
- InMemoryAppointmentStore keeps demo data in process
"""
import threading
from abc import ABC, abstractmethod
from datetime import date as date_type, datetime, timedelta
from typing import Callable, Dict, List, Optional

import requests

from medflow import config
from medflow.availability import is_time_slot_occupied
from medflow.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from medflow.http_client import api_call_with_protection, create_http_session
from medflow.logging_config import get_logger
from medflow.models import Appointment, AppointmentStatus, RescheduleRequest

logger = get_logger(__name__)


class StoreError(Exception):
    """The appointment store could not be reached or answered unexpectedly."""
    pass


class AppointmentNotFound(StoreError):
    """No appointment with the requested identifier."""

    def __init__(self, appointment_id: str):
        super().__init__(f"Appointment '{appointment_id}' not found")
        self.appointment_id = appointment_id


class RescheduleRejected(StoreError):
    """The store refused a reschedule (inactive appointment or taken slot)."""

    def __init__(self, message: str, conflict: bool = False):
        super().__init__(message)
        self.conflict = conflict


class AppointmentStore(ABC):
    """Operations the scheduling core needs from appointment persistence."""

    @abstractmethod
    def fetch_appointments_for_date(self, day: date_type) -> List[Appointment]:
        """Active appointments starting on ``day``."""

    @abstractmethod
    def submit_reschedule(self, request: RescheduleRequest) -> bool:
        """Move an appointment to a new start time. False if refused."""

    @abstractmethod
    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        ...

    @abstractmethod
    def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        ...


class InMemoryAppointmentStore(AppointmentStore):
    """
    Process-local store for demo mode and tests.

    All access goes through one re-entrant lock; the data is sample data,
    so last write wins.
    """

    def __init__(
        self,
        default_duration: int = config.DEFAULT_APPOINTMENT_DURATION,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.default_duration = default_duration
        self._clock = clock
        self._appointments: Dict[str, Appointment] = {}
        self._lock = threading.RLock()

    def add(self, appointment: Appointment) -> Appointment:
        with self._lock:
            self._appointments[appointment.id] = appointment
        return appointment

    def list_appointments(self) -> List[Appointment]:
        with self._lock:
            return sorted(self._appointments.values(), key=lambda a: a.date_time)

    def clear(self):
        with self._lock:
            self._appointments.clear()

    def fetch_appointments_for_date(self, day: date_type) -> List[Appointment]:
        if isinstance(day, datetime):
            day = day.date()
        with self._lock:
            return [
                appointment for appointment in self.list_appointments()
                if appointment.date_time.date() == day and appointment.is_active
            ]

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        with self._lock:
            return self._appointments.get(appointment_id)

    def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        with self._lock:
            appointment = self._require(appointment_id)
            updated = appointment.model_copy(update={"status": AppointmentStatus(status)})
            self._appointments[appointment_id] = updated
        logger.info("appointment_status_updated", appointment_id=appointment_id, status=updated.status.value)
        return updated

    def reschedule(self, request: RescheduleRequest) -> Appointment:
        """
        Write a new start time onto an existing appointment.

        Raises:
            AppointmentNotFound: unknown identifier
            RescheduleRejected: appointment not active, new start time not in
                the future, or the new interval overlaps another active booking
        """
        with self._lock:
            appointment = self._require(request.appointment_id)
            if not appointment.is_active:
                raise RescheduleRejected(
                    f"Cannot reschedule a {appointment.status.value} appointment"
                )

            if request.new_date_time <= self._clock():
                raise RescheduleRejected(
                    f"Cannot reschedule to {request.new_date_time.isoformat()}, it is in the past"
                )

            duration = appointment.duration or self.default_duration
            new_start = request.new_date_time
            new_end = new_start + timedelta(minutes=duration)
            others = [
                other for other in self.fetch_appointments_for_date(new_start.date())
                if other.id != appointment.id
            ]
            if is_time_slot_occupied(new_start, new_end, others, self.default_duration):
                raise RescheduleRejected("This time slot is no longer available", conflict=True)

            changes = {"date_time": new_start}
            if request.patient_name:
                changes["patient_name"] = request.patient_name
            if request.patient_email:
                changes["patient_email"] = request.patient_email
            updated = appointment.model_copy(update=changes)
            self._appointments[appointment.id] = updated

        logger.info(
            "appointment_rescheduled",
            appointment_id=updated.id,
            new_date_time=new_start.isoformat(),
            reason=request.reason
        )
        return updated

    def submit_reschedule(self, request: RescheduleRequest) -> bool:
        try:
            self.reschedule(request)
        except (AppointmentNotFound, RescheduleRejected) as e:
            logger.warning("reschedule_refused", appointment_id=request.appointment_id, error=str(e))
            return False
        return True

    def _require(self, appointment_id: str) -> Appointment:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFound(appointment_id)
        return appointment


def seed_demo_appointments(
    store: InMemoryAppointmentStore,
    today: Optional[date_type] = None
) -> List[Appointment]:
    """Load the two sample bookings shown in demo mode (tomorrow 09:00, in two days 14:30)."""
    today = today or date_type.today()
    tomorrow = datetime.combine(today + timedelta(days=1), datetime.min.time())
    samples = [
        Appointment(
            id="demo-appointment-1",
            patient_name="John Doe",
            date_time=tomorrow.replace(hour=9),
            status=AppointmentStatus.SCHEDULED,
        ),
        Appointment(
            id="demo-appointment-2",
            patient_name="Jane Smith",
            date_time=(tomorrow + timedelta(days=1)).replace(hour=14, minute=30),
            status=AppointmentStatus.CONFIRMED,
        ),
    ]
    return [store.add(appointment) for appointment in samples]


class HttpAppointmentStore(AppointmentStore):
    """Appointment store backed by the appointment API."""

    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or create_http_session()
        self.breaker = breaker or CircuitBreaker(failure_threshold=5, timeout=60)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return api_call_with_protection(self.session, self.breaker, method, url, **kwargs)
        except CircuitBreakerOpen as e:
            raise StoreError(str(e)) from e
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Could not connect to appointment API: {e}") from e

    @staticmethod
    def _payload(response: requests.Response) -> dict:
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f"Invalid JSON from appointment API (HTTP {response.status_code})") from e

    def fetch_appointments_for_date(self, day: date_type) -> List[Appointment]:
        if isinstance(day, datetime):
            day = day.date()
        response = self._request("GET", "/appointments", params={"date": day.isoformat()})
        data = self._payload(response)
        if response.status_code != 200 or not data.get("success"):
            raise StoreError(data.get("error", f"HTTP {response.status_code} fetching appointments"))
        return [Appointment.model_validate(item) for item in data.get("appointments", [])]

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        response = self._request("GET", f"/appointments/{appointment_id}")
        if response.status_code == 404:
            return None
        data = self._payload(response)
        if response.status_code != 200:
            raise StoreError(data.get("error", f"HTTP {response.status_code} fetching appointment"))
        return Appointment.model_validate(data["appointment"])

    def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        response = self._request(
            "PATCH",
            f"/appointments/{appointment_id}",
            json={"status": AppointmentStatus(status).value}
        )
        if response.status_code == 404:
            raise AppointmentNotFound(appointment_id)
        data = self._payload(response)
        if response.status_code != 200:
            raise StoreError(data.get("error", f"HTTP {response.status_code} updating status"))
        return Appointment.model_validate(data["appointment"])

    def submit_reschedule(self, request: RescheduleRequest) -> bool:
        response = self._request(
            "PUT",
            f"/appointments/{request.appointment_id}/reschedule",
            json=request.model_dump(mode="json")
        )

        if response.status_code == 200:
            return True

        if response.status_code in (400, 404, 409):
            data = self._payload(response)
            logger.warning(
                "reschedule_refused",
                appointment_id=request.appointment_id,
                status_code=response.status_code,
                error=data.get("error")
            )
            return False

        raise StoreError(f"HTTP {response.status_code} submitting reschedule")
