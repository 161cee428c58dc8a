from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class BlogError(Exception):
    """Base class for errors the API maps onto a specific status code."""

    status_code = 400
    detail = "Bad request"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.detail)
        self.detail = detail or self.detail


class AuthenticationRequired(BlogError):
    status_code = 401
    detail = "Authentication required"


class PermissionDenied(BlogError):
    status_code = 403
    detail = "You do not have permission to modify this resource"


class SlugConflict(BlogError):
    status_code = 409
    detail = "Slug is already taken"


async def _blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BlogError, _blog_error_handler)
