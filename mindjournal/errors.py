from fastapi import Request, status
from fastapi.responses import JSONResponse


class JournalError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Request failed"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.detail)
        self.detail = detail or self.detail


class AuthenticationDenied(JournalError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Authentication failed"


class MissingCredential(AuthenticationDenied):
    detail = "Missing Telegram initData"


class MissingSignature(AuthenticationDenied):
    detail = "Missing hash in initData"


class SignatureMismatch(AuthenticationDenied):
    detail = "Invalid initData signature"


class Expired(AuthenticationDenied):
    detail = "initData expired"


class MalformedPayload(AuthenticationDenied):
    detail = "initData validation failed"


class AccessDenied(JournalError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Access denied"


class NotFound(JournalError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Not found"


class InviteNotFound(NotFound):
    # absent, used and expired are reported identically
    detail = "Invalid or expired invite"


class SelfInvite(JournalError):
    detail = "You cannot accept your own invite"


class ValidationError(JournalError):
    detail = "Invalid input"


async def journal_error_handler(request: Request, exc: JournalError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
