# workbook/middleware/auth.py
import logging
from typing import Optional, Sequence, Set

from fastapi import HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from workbook.auth.jwt import TokenError, TokenExpired, TokenInvalid, decode_and_validate
from workbook.auth.schemas import AuthenticatedUser, ErrorDetail, ErrorResponse
from workbook.config import JwtSettings, jwt_settings

_log = logging.getLogger(__name__)

# --- Error Definitions ---
AUTH_ERROR_DETAIL_MISSING = ErrorDetail(code="AUTH_001", message="Authentication credentials were not provided.")
AUTH_ERROR_DETAIL_EXPIRED = ErrorDetail(code="AUTH_002", message="Token has expired.")
AUTH_ERROR_DETAIL_INTERNAL = ErrorDetail(code="AUTH_999", message="An internal error occurred during authentication.")

# auto_error=False means it returns None if no header, instead of raising HTTPException
bearer_scheme = HTTPBearer(auto_error=False, description="JWT Access Token for authentication.")


def _unauthorized(detail: ErrorDetail, description: Optional[str] = None) -> JSONResponse:
    challenge = "Bearer"
    if description:
        challenge = f"Bearer error=\"invalid_token\", error_description=\"{description}\""
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=ErrorResponse(detail=detail).model_dump(),
        headers={"WWW-Authenticate": challenge},
    )


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Verifies the bearer token on every request outside the excluded paths.

    - Attaches AuthenticatedUser(id, display_name) to request.state.user on success.
    - Returns a 401 JSON ErrorResponse on a missing, invalid or expired token.
    - Skips OPTIONS requests for CORS preflight.
    """
    def __init__(
        self,
        app,
        excluded_paths: Sequence[str] | Set[str] | None = None,
        settings: JwtSettings = jwt_settings,
    ):
        super().__init__(app)
        self.settings = settings
        self.excluded_paths = set(excluded_paths) if excluded_paths else set()
        self.excluded_paths.update({"/docs", "/openapi.json", "/redoc"})
        _log.info(f"Auth Middleware initialized. Excluded paths: {sorted(self.excluded_paths)}")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.user = None

        if request.url.path in self.excluded_paths:
            _log.debug(f"Skipping auth for excluded path: {request.url.path}")
            return await call_next(request)

        if request.method == "OPTIONS":
            return await call_next(request)

        credentials: HTTPAuthorizationCredentials | None = await bearer_scheme(request)
        if not credentials:
            _log.warning(f"Auth failed: No token provided for path {request.url.path}")
            return _unauthorized(AUTH_ERROR_DETAIL_MISSING)

        try:
            payload = decode_and_validate(token=credentials.credentials, expected_type="access", settings=self.settings)
        except TokenExpired as e:
            _log.warning(f"Auth failed: Token expired for path {request.url.path}. Code: {e.code}")
            return _unauthorized(AUTH_ERROR_DETAIL_EXPIRED, e.message)
        except TokenInvalid as e:
            _log.warning(f"Auth failed: Token invalid for path {request.url.path}. Code: {e.code}, Msg: {e.message}")
            return _unauthorized(ErrorDetail(code=e.code, message=e.message), e.message)
        except TokenError as e:
            _log.error(f"Auth failed: Unexpected TokenError for path {request.url.path}. Code: {e.code}", exc_info=True)
            return _unauthorized(ErrorDetail(code=e.code, message=e.message), e.message)

        request.state.user = AuthenticatedUser(id=payload["sub"], display_name=payload.get("name"))
        _log.debug(f"Auth success: User {payload['sub']} accessed {request.url.path}")
        return await call_next(request)


async def get_current_user(request: Request) -> AuthenticatedUser:
    """Dependency returning the user attached by AuthenticationMiddleware."""
    user: AuthenticatedUser | None = getattr(request.state, "user", None)
    if not isinstance(user, AuthenticatedUser):
        _log.error(f"request.state.user missing on path {request.url.path}. Middleware might not have run.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=AUTH_ERROR_DETAIL_INTERNAL.model_dump(),
        )
    return user
