"""Make sure it is the core calling us.

The core has to present the key it received at registration, either in the
``X-AuthToken`` header or in the ``auth`` query parameter.  Anything else is
answered with a bare 401 before the request body is read.
"""

from fastapi import Request
from fastapi.responses import Response

from lib.utils.helpers import tokens_match

AUTH_HEADER = "X-AuthToken"
AUTH_QUERY_PARAM = "auth"


class AuthenticationError(Exception):
    """Raised by :class:`Authenticator`; carries no detail on purpose."""


class Authenticator:
    """FastAPI dependency checking the shared auth key."""

    def __init__(self, auth_key: str) -> None:
        self._auth_key = auth_key

    async def __call__(self, request: Request) -> None:
        received = request.headers.get(AUTH_HEADER) or request.query_params.get(AUTH_QUERY_PARAM)
        if not tokens_match(received, self._auth_key):
            raise AuthenticationError()


async def authentication_error_handler(request: Request, exc: AuthenticationError) -> Response:
    return Response(status_code=401)


__all__ = ["AUTH_HEADER", "AUTH_QUERY_PARAM", "AuthenticationError", "Authenticator", "authentication_error_handler"]
