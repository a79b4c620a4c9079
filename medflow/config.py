"""Configuration for the MedFlow scheduling core.

Clinic defaults live here; deployment settings come from the environment
(a local .env file is loaded if present).
"""
import os

from dotenv import load_dotenv

load_dotenv()

# Default clinic schedule: Monday to Friday, 08:00-18:00, 45-minute consultations.
# Weekdays use 0=Sunday..6=Saturday.
DEFAULT_CONSTRAINTS = {
    "work_days": [1, 2, 3, 4, 5],
    "work_start_hour": 8,
    "work_end_hour": 18,
    "slot_duration": 45,
}

DEFAULT_APPOINTMENT_DURATION = 45  # minutes

# Share of demo slots shown as taken when real availability is unreachable
DEMO_UNAVAILABLE_RATIO = 0.3

# Look-ahead window for "next available slot" searches
NEXT_SLOT_SEARCH_DAYS = 7

# Slots further ahead than this are not bookable
MAX_ADVANCE_BOOKING_DAYS = 90

# Range queries
MAX_RANGE_SLOTS = 100

# Recommendations: weekday slots starting 09:00-11:59 come first
RECOMMENDATION_SEARCH_DAYS = 14
RECOMMENDATION_POOL_SIZE = 50
DEFAULT_RECOMMENDATIONS = 3
PREFERRED_HOURS = (9, 11)

# Appointment API
API_BASE_URL = os.getenv("MEDFLOW_API_BASE_URL", "http://localhost:5000")
API_PORT = int(os.getenv("MEDFLOW_API_PORT", "5000"))
HTTP_TIMEOUT = int(os.getenv("MEDFLOW_HTTP_TIMEOUT", "15"))

LOG_LEVEL = os.getenv("MEDFLOW_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("MEDFLOW_LOG_FORMAT", "json")


def is_demo_mode() -> bool:
    """Demo mode is on only when MEDFLOW_DEMO_MODE is explicitly 'true'."""
    return os.getenv("MEDFLOW_DEMO_MODE", "false").strip().lower() == "true"
