from __future__ import annotations

from typing import Optional


class RouteError(Exception):
    """
    Error that aborts a request and is rendered as a JSON error response.

    `message` is safe to show to the user; `cause` is only logged.
    """

    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class UserError(RouteError):
    """Bad input from the browser (missing/mismatched callback params, no pending token)."""

    status_code = 400


class FatalError(RouteError):
    """A collaborator failed (Twitter, Postgres, session signing)."""

    status_code = 500


class UnauthorizedError(RouteError):
    status_code = 401


class ForbiddenError(RouteError):
    """The route exists but is switched off in this deployment."""

    status_code = 403
