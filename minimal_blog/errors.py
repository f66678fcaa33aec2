"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; `minimal_blog.api.server` turns them into
`{"error": detail}` JSON responses with `status_code`.
"""

from __future__ import annotations


class BlogError(Exception):
    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(BlogError):
    status_code = 400


class AuthenticationError(BlogError):
    """Bad credentials on login."""

    status_code = 401


class Unauthorized(BlogError):
    """Missing or invalid session token."""

    status_code = 401


class ForbiddenError(BlogError):
    status_code = 403


class NotFoundError(BlogError):
    status_code = 404


class ConflictError(BlogError):
    status_code = 409


class InternalError(BlogError):
    status_code = 500
