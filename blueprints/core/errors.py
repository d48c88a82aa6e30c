from __future__ import annotations


class SchedulingError(Exception):
    """Base error of the online-class core. ``code`` goes to the JSON body."""
    code = "scheduling_error"
    http_status = 400

    def __init__(self, message: str | None = None, *, code: str | None = None, **details):
        super().__init__(message or self.code)
        if code:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.code}
        detail = str(self)
        if detail and detail != self.code:
            body["detail"] = detail
        if self.details:
            body.update(self.details)
        return body


class ValidationError(SchedulingError, ValueError):
    code = "validation_error"
    http_status = 400


class NotFoundError(SchedulingError, LookupError):
    code = "not_found"
    http_status = 404


class InvalidTransitionError(SchedulingError):
    code = "invalid_transition"
    http_status = 409


class ActivationRequiredError(SchedulingError):
    code = "activation_required"
    http_status = 403


class CredentialError(SchedulingError):
    code = "invalid_credential"
    http_status = 401
