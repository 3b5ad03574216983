"""Error taxonomy shared by REST routes, socket handlers and services.

Rule denials are not errors: see ``services.territory.rules.DenialReason``.
"""


class SubRiskError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SubRiskError):
    """Request is well formed but not allowed in the current game state."""
    status_code = 400


class PermissionDenied(SubRiskError):
    status_code = 403


class NotFoundError(SubRiskError):
    status_code = 404


class ConsistencyError(SubRiskError):
    """A commit failed; the session was rolled back and nothing was persisted."""
    status_code = 409


class GameBusyError(SubRiskError):
    """The game's conquest lock could not be acquired in time."""
    status_code = 503
