from enum import Enum


class NotificationKind(str, Enum):
    APPOINTMENT_CREATED = "appointment_created"
    RECORD_UPDATED = "record_updated"  # vitals, lab results, doctor visits, ...
    PATIENT_REGISTERED = "patient_registered"
    QUEUE_STATUS_CHANGED = "queue_status_changed"


class Channel(str, Enum):
    SMS = "sms"
    EMAIL = "email"
    IN_APP = "in_app"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class OutcomeReason(str, Enum):
    NO_DESTINATION = "NoDestination"
    TIMEOUT = "Timeout"
    CANCELLED = "Cancelled"
    LOG_UNAVAILABLE = "LogUnavailable"


class RecordType(str, Enum):
    HISTORY_TAKING = "history_taking"
    VITAL_SIGNS = "vital_signs"
    DOCTOR_VISIT = "doctor_visit"
    LAB_RESULT = "lab_result"
    PRESCRIPTION = "prescription"
    DOCUMENT = "document"
    PATIENT_REGISTRATION = "patient_registration"
