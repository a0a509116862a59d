"""FastAPI application factory."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from clipcraft import __version__
from clipcraft.config import ClipcraftConfig, load_config
from clipcraft.errors import ConfigurationError, InputError
from clipcraft.llm import LLMClient, LLMError
from clipcraft.server import routes
from clipcraft.transcripts import TranscriptSource

logger = logging.getLogger(__name__)


def create_app(
    config: ClipcraftConfig | None = None,
    llm: LLMClient | None = None,
    transcript_source: TranscriptSource | None = None,
) -> FastAPI:
    """Build the HTTP app.

    Args:
        config: Configuration; loaded from the usual places when omitted.
        llm: Client for every model call; the Anthropic client is created
            on first request when omitted.
        transcript_source: Fetcher for ``transcriptUrl`` bodies.
    """
    config = config or load_config()

    app = FastAPI(title="clipcraft", version=__version__)
    app.state.config = config
    app.state.llm = llm
    app.state.transcript_source = transcript_source or TranscriptSource(
        timeout=config.transcripts.fetch_timeout
    )
    app.include_router(routes.router, prefix="/api")

    @app.exception_handler(InputError)
    async def input_error(request: Request, exc: InputError) -> JSONResponse:
        logger.info("Rejected %s: %s", request.url.path, exc)
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(RequestValidationError)
    async def body_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = str(errors[0].get("msg", "invalid request")) if errors else "invalid request"
        return JSONResponse({"error": message}, status_code=400)

    @app.exception_handler(LLMError)
    async def llm_error(request: Request, exc: LLMError) -> JSONResponse:
        logger.error("Model call failed on %s: %s", request.url.path, exc)
        return JSONResponse({"error": str(exc)}, status_code=502)

    @app.exception_handler(ConfigurationError)
    async def config_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Configuration error: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=500)

    return app
