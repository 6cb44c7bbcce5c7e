"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_NOTIFICATION_MESSAGE_LENGTH = 500

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite) - localhost
    FRONTEND_URL,  # Includes production URL if FRONTEND_URL is set accordingly
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Appointment kinds and the professional kind that serves each one
APPOINTMENT_KIND_CONSULTATION = "consultation"
APPOINTMENT_KIND_THERAPY = "therapy"
APPOINTMENT_KINDS = (APPOINTMENT_KIND_CONSULTATION, APPOINTMENT_KIND_THERAPY)

PROFESSIONAL_KIND_DOCTOR = "doctor"
PROFESSIONAL_KIND_THERAPIST = "therapist"
PROFESSIONAL_KINDS = (PROFESSIONAL_KIND_DOCTOR, PROFESSIONAL_KIND_THERAPIST)

PROFESSIONAL_KIND_FOR_APPOINTMENT_KIND = {
    APPOINTMENT_KIND_CONSULTATION: PROFESSIONAL_KIND_DOCTOR,
    APPOINTMENT_KIND_THERAPY: PROFESSIONAL_KIND_THERAPIST,
}

# Maximum concurrently active appointments per slot
SLOT_CAPACITY = {
    APPOINTMENT_KIND_CONSULTATION: 1,
    APPOINTMENT_KIND_THERAPY: 2,
}

# Booking windows (local time, hours). The end hour is the latest slot start.
CONSULTATION_WINDOW_START_HOUR = 8
CONSULTATION_WINDOW_END_HOUR = 16
THERAPY_WINDOW_START_HOUR = 6
THERAPY_WINDOW_END_HOUR = 18
THERAPY_SLOT_MINUTES = 60

# Appointment statuses
STATUS_SCHEDULED = "scheduled"
STATUS_COMPLETED = "completed"
STATUS_NO_SHOW = "no-show"
STATUS_CANCELLED = "cancelled"
CLOSED_STATUSES = (STATUS_COMPLETED, STATUS_NO_SHOW, STATUS_CANCELLED)

# Notification types written to a professional's inbox
NOTIFICATION_NEW_APPOINTMENT = "new_appointment"
NOTIFICATION_APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
NOTIFICATION_APPOINTMENT_CANCELLED = "appointment_cancelled"

# Intake session sweep
INTAKE_SWEEP_INTERVAL_MINUTES = 15
INTAKE_SWEEP_MAX_INSTANCES = 1  # Prevent overlapping sweeps
