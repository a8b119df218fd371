"""
Standalone Auth Service
=======================

Application factory that serves the auth endpoints on their own.

Routers:
    - {NEXTAUTH_BASE_PATH}/*  : Authentication flows (providers, csrf, session,
                                signin, callback, signout, error, verify-request)
    - /health                 : Health check endpoint

Environment Variables:
    - NEXTAUTH_URL: Public site URL (e.g., "https://example.com")
    - NEXTAUTH_SECRET: Secret for signing/encrypting session tokens
    - NEXTAUTH_BASE_PATH: Mount path of the auth routes (default: /api/auth)
    - NEXTAUTH_OPTIONS: "module:attribute" of an AuthOptions instance
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        NEXTAUTH_OPTIONS=myproject.auth:options nextauth-serve

    With uvicorn directly:
        uvicorn nextauth.main:create_app --factory --host 0.0.0.0 --port 3000
"""

import importlib
import logging
import sys
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import get_settings, validate_configuration
from .errors import ConfigurationError
from .integrations.fastapi import NextAuth
from .models import AuthOptions

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def load_options(path: str) -> AuthOptions:
    """
    Import an ``AuthOptions`` instance from a ``module:attribute`` path.

    Raises:
        ConfigurationError: If the path cannot be resolved to AuthOptions
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"NEXTAUTH_OPTIONS must look like 'module:attribute', got: {path}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Unable to import {module_name}: {e}") from e

    options = getattr(module, attribute, None)
    if not isinstance(options, AuthOptions):
        raise ConfigurationError(f"{path} is not an AuthOptions instance")
    return options


def create_app(options: Optional[AuthOptions] = None) -> FastAPI:
    """
    Application factory function.

    Args:
        options: Auth configuration; loaded from NEXTAUTH_OPTIONS when omitted

    Returns:
        FastAPI: Configured application instance

    Raises:
        ConfigurationError: If no options are given and NEXTAUTH_OPTIONS is unset
    """
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    if options is None:
        if not settings.NEXTAUTH_OPTIONS:
            raise ConfigurationError("Pass AuthOptions to create_app() or set NEXTAUTH_OPTIONS")
        options = load_options(settings.NEXTAUTH_OPTIONS)

    report = validate_configuration(settings)
    for warning in report["warnings"]:
        logger.warning(warning)
    for error in report["errors"]:
        logger.error(f"CONFIGURATION_ERROR: {error}")

    app = FastAPI(
        title="Auth Service",
        description="Session, CSRF and OAuth flows for web applications",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
    )

    app.include_router(NextAuth(options))

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        return {
            "status": "ok",
            "service": "nextauth",
            "version": "1.0.0"
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Log unhandled errors and return a generic response.

        Stack traces and exception messages never reach the client.
        """
        logger.error(
            f"Unhandled exception: {type(exc).__name__}",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            }
        )

    logger.info(f"Auth routes mounted at {options.base_path or settings.NEXTAUTH_BASE_PATH}")
    return app


def main() -> None:
    """Run the standalone service with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "nextauth.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
