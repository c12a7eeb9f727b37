# hms/errors.py
"""
Domain errors raised by the allocator, the bed registry and the admission
orchestrator. The HTTP layer maps them to status codes in hms.main.
"""


class HospitalError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(HospitalError):
    status_code = 404


class Conflict(HospitalError):
    """A concurrent writer won the race; retry the whole operation."""
    status_code = 409


class InvalidState(HospitalError):
    status_code = 409


class BedUnavailable(InvalidState):
    pass


class AlreadyDischarged(InvalidState):
    pass


class InvalidRequest(HospitalError):
    """Input the caller can fix: malformed period label, blank ward name or bed label."""
    status_code = 400
