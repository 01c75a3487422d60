"""FastAPI proxy exposing the GitHub content repository to the site."""

from __future__ import annotations

from time import monotonic

import typer
import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from services.content_repo import ContentRepoError, create_http_client
from shared.config import settings
from shared.logging import configure, log_error, log_info, log_warning

from .content import router as content_router

AVAILABLE_ROUTES = [
    "GET /api/list?folder={Words|Lines|Motion|Sound|All}",
    "GET /api/file?path={path}[&meta=true]",
    "GET /api/about",
    "POST /api/commit",
    "DELETE /api/commit",
    "GET /healthz",
]

configure()

app = FastAPI(title="Site Content API")
cli = typer.Typer(add_completion=False)


class LogRequestsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = monotonic()
        response = await call_next(request)
        duration_ms = int((monotonic() - start) * 1000)
        log_info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        return response


app.add_middleware(LogRequestsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.ALLOWED_ORIGIN],
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.include_router(content_router)


@app.on_event("startup")
async def on_startup() -> None:
    """Open the shared GitHub HTTP client."""
    app.state.http = create_http_client(settings)
    if not settings.GITHUB_TOKEN:
        log_warning("config", problem="GITHUB_TOKEN missing; content routes will fail")
    if not settings.ADMIN_API_TOKEN:
        log_warning("config", problem="ADMIN_API_TOKEN unset; write routes are open")
    log_info(
        "start",
        owner=settings.GITHUB_OWNER,
        repo=settings.GITHUB_REPO,
        allowed_origin=settings.ALLOWED_ORIGIN,
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await app.state.http.aclose()


@app.exception_handler(ContentRepoError)
async def content_repo_error(request: Request, exc: ContentRepoError) -> JSONResponse:
    log_error(
        "error",
        path=request.url.path,
        status=exc.status_code,
        error_class=exc.__class__.__name__,
        error_message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return JSONResponse(
            status_code=404,
            content={"error": "Not found", "routes": AVAILABLE_ROUTES},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.get("/healthz")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@cli.command()
def run(host: str = settings.HOST, port: int = settings.PORT) -> None:
    """Run the content proxy."""
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":  # pragma: no cover
    cli()
