from .error_event import ErrorEvent
from .error_record import ErrorRecord, StatusTransition

__all__ = [
    "ErrorEvent",
    "ErrorRecord",
    "StatusTransition",
]
