"""Development appointment API.

Flask server standing in for the clinic's document store during local
development and integration tests:
- Appointments for a day
- Appointment lookup, creation and status changes
- Rescheduling (same appointment, new start time)
- Computed availability

Run with: python mock_api.py
"""
import uuid
from datetime import datetime

from flask import Flask, jsonify, request
from flask_cors import CORS
from pydantic import ValidationError

from medflow import config
from medflow.availability import compute_available_slots, is_time_slot_occupied
from medflow.logging_config import RequestIDMiddleware, get_logger, setup_structured_logging
from medflow.models import Appointment, AppointmentStatus, RescheduleRequest
from medflow.scheduling import get_default_constraints
from medflow.store import (
    AppointmentNotFound,
    InMemoryAppointmentStore,
    RescheduleRejected,
    seed_demo_appointments,
)

logger = get_logger(__name__)


def _validation_details(error: ValidationError):
    return error.errors(include_url=False, include_context=False, include_input=False)


def _error(message: str, status_code: int, **extra):
    body = {"success": False, "error": message}
    body.update(extra)
    return jsonify(body), status_code


def _parse_day(value: str):
    return datetime.strptime(value, "%Y-%m-%d").date()


def create_app(store: InMemoryAppointmentStore = None) -> Flask:
    """Build the API over ``store`` (a fresh, empty store by default)."""
    app = Flask(__name__)
    CORS(app)
    app.wsgi_app = RequestIDMiddleware(app.wsgi_app)

    store = store if store is not None else InMemoryAppointmentStore()
    app.config["APPOINTMENT_STORE"] = store

    @app.route('/appointments', methods=['GET'])
    def list_appointments():
        """GET /appointments?date=2026-01-14 - Active appointments on a day (all if no date)."""
        day = request.args.get('date')
        if day:
            try:
                appointments = store.fetch_appointments_for_date(_parse_day(day))
            except ValueError:
                return _error("Invalid date format. Use YYYY-MM-DD", 400)
        else:
            appointments = store.list_appointments()

        return jsonify({
            "success": True,
            "appointments": [a.model_dump(mode="json") for a in appointments],
            "total": len(appointments)
        })

    @app.route('/appointments', methods=['POST'])
    def create_appointment():
        """POST /appointments - Book a new appointment.

        Expected JSON body:
        {
            "patient_name": "Ion Popescu",
            "patient_email": "ion.popescu@example.ro",
            "date_time": "2026-01-14T09:00:00",
            "duration": 45
        }
        """
        data = request.get_json(silent=True)
        if not data or not isinstance(data, dict):
            return _error("Request body is required", 400)

        data.setdefault("id", f"apt-{uuid.uuid4().hex[:8]}")
        try:
            appointment = Appointment.model_validate(data)
        except ValidationError as e:
            return _error("Invalid appointment", 400, details=_validation_details(e))

        if store.get_appointment(appointment.id) is not None:
            return _error(f"Appointment '{appointment.id}' already exists", 409)

        same_day = store.fetch_appointments_for_date(appointment.date_time.date())
        end = appointment.end_time(store.default_duration)
        if is_time_slot_occupied(appointment.date_time, end, same_day, store.default_duration):
            return _error("This time slot is no longer available", 409)

        store.add(appointment)
        logger.info("appointment_created", appointment_id=appointment.id)
        return jsonify({"success": True, "appointment": appointment.model_dump(mode="json")}), 201

    @app.route('/appointments/<appointment_id>', methods=['GET'])
    def get_appointment(appointment_id):
        """GET /appointments/apt-1001 - Appointment by identifier."""
        appointment = store.get_appointment(appointment_id)
        if appointment is None:
            return _error(f"Appointment '{appointment_id}' not found", 404)
        return jsonify({"success": True, "appointment": appointment.model_dump(mode="json")})

    @app.route('/appointments/<appointment_id>', methods=['PATCH'])
    def update_status(appointment_id):
        """PATCH /appointments/apt-1001 - Change status (appointments are never deleted)."""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}
        try:
            status = AppointmentStatus(data.get("status", ""))
        except ValueError:
            allowed = ", ".join(s.value for s in AppointmentStatus)
            return _error(f"status must be one of: {allowed}", 400)

        try:
            appointment = store.update_status(appointment_id, status)
        except AppointmentNotFound as e:
            return _error(str(e), 404)
        return jsonify({"success": True, "appointment": appointment.model_dump(mode="json")})

    @app.route('/appointments/<appointment_id>/reschedule', methods=['PUT'])
    def reschedule_appointment(appointment_id):
        """PUT /appointments/apt-1001/reschedule - Move to a new start time.

        Patient data is preserved unless new values are sent.
        """
        data = request.get_json(silent=True)
        if not data or not isinstance(data, dict):
            return _error("Request body is required", 400)

        data["appointment_id"] = appointment_id
        try:
            reschedule_request = RescheduleRequest.model_validate(data)
        except ValidationError as e:
            return _error("Invalid reschedule request", 400, details=_validation_details(e))

        try:
            appointment = store.reschedule(reschedule_request)
        except AppointmentNotFound as e:
            return _error(str(e), 404)
        except RescheduleRejected as e:
            return _error(str(e), 409 if e.conflict else 400)

        return jsonify({
            "success": True,
            "appointment": appointment.model_dump(mode="json"),
            "rescheduled_at": datetime.now().isoformat()
        })

    @app.route('/availability', methods=['GET'])
    def get_availability():
        """GET /availability?date=2026-01-14&exclude_appointment_id=apt-1001"""
        day = request.args.get('date')
        if not day:
            return _error("date parameter is required", 400)
        try:
            day = _parse_day(day)
        except ValueError:
            return _error("Invalid date format. Use YYYY-MM-DD", 400)

        constraints = get_default_constraints()
        slots = compute_available_slots(
            day,
            constraints,
            store.fetch_appointments_for_date(day),
            exclude_appointment_id=request.args.get('exclude_appointment_id')
        )
        return jsonify({
            "success": True,
            "date": day.isoformat(),
            "slots": [s.model_dump(mode="json") for s in slots],
            "total_slots": len(slots)
        })

    return app


if __name__ == '__main__':
    setup_structured_logging(config.LOG_LEVEL, config.LOG_FORMAT)
    demo_store = InMemoryAppointmentStore()
    seed_demo_appointments(demo_store)
    create_app(demo_store).run(port=config.API_PORT, debug=True)
