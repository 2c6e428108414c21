"""
pinpoint/errors.py
Error taxonomy. None of these halt the process: each is caught at the
component boundary, logged, and turned into "no reporting until the next
qualifying event".
"""


class PinpointError(Exception):
    """Base class for all coordinator errors."""


class PermissionDenied(PinpointError):
    """Location permission not granted. Pipeline stays disarmed."""


class ServiceUnavailable(PinpointError):
    """Location services switched off at OS level. Pipeline stays disarmed."""


class ConnectionFailure(PinpointError):
    """Transport connect failed or the broker rejected the connect ack."""


class PersistenceFailure(PinpointError):
    """Durable store unreadable or unwritable."""
