"""Error taxonomy shared by the procedures, the storage layer and the routes.

Every error carries the HTTP status it is rendered with and a short ``code``
tag that clients can switch on.
"""


class PortalError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message())
        self.message = str(self)

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__


class AuthenticationFailure(PortalError):
    status_code = 401
    code = "authentication_failure"

    @classmethod
    def default_message(cls) -> str:
        return "Could not validate credentials"


class Forbidden(PortalError):
    status_code = 403
    code = "forbidden"

    @classmethod
    def default_message(cls) -> str:
        return "Not enough permissions"


class VotingClosed(PortalError):
    status_code = 403
    code = "voting_closed"

    @classmethod
    def default_message(cls) -> str:
        return "Voting is currently closed."


class AlreadyVoted(PortalError):
    status_code = 409
    code = "already_voted"

    @classmethod
    def default_message(cls) -> str:
        return "You have already voted for this position."


class Conflict(PortalError):
    status_code = 409
    code = "conflict"


class ValidationError(PortalError):
    status_code = 422
    code = "validation_error"


class NotFound(PortalError):
    status_code = 404
    code = "not_found"


class BackendUnavailable(PortalError):
    status_code = 503
    code = "backend_unavailable"

    @classmethod
    def default_message(cls) -> str:
        return "The election database is unavailable. Please try again."
