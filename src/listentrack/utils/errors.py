class TrackerError(Exception):
    """Base for every failure a fetch cycle can report."""


class NetworkError(TrackerError):
    """Provider unreachable, timed out, or answered with a non-2xx status."""


class AuthError(TrackerError):
    """Token missing, expired or rejected (401/403). User must log in again."""


class ParseError(TrackerError):
    """Provider answered 2xx but the body is not the shape we expect."""


class PersistenceError(TrackerError):
    """A database transaction failed and was rolled back."""
