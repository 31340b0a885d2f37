#!/usr/bin/env python3
"""
FastAPI server for the option chain proxy and strategy builder.

Endpoints:
    GET  /health
    GET  /open-interest?identifier=NIFTY   normalized option chain
    POST /builder                          payoff curve for a set of legs

Usage:
    uvicorn lib.optionchain.server:app --host 0.0.0.0 --port 6123
    # or
    python -m lib.optionchain.server
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import ServiceConfig, load_config, setup_logging
from .nse_client import UpstreamError, create_client
from .payoff import ValidationError, compute_payoff
from .schemas import error_body, parse_strategy, payoff_to_dict, validation_error_body


logger = logging.getLogger(__name__)


def create_app(config: Optional[ServiceConfig] = None) -> FastAPI:
    """Build the FastAPI app for the given config (defaults to load_config())."""
    config = config or load_config()
    setup_logging(config.log_level_value)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info(f"Option chain proxy starting up on port {config.port}")
        yield
        logger.info("Option chain proxy shutting down...")

    app = FastAPI(
        title="Option Chain Proxy",
        description="Option chain proxy and strategy payoff builder",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Undecodable or missing bodies get the same error shape as rejected legs."""
        errors = exc.errors()
        message = errors[0].get("msg", "invalid request body") if errors else "invalid request body"
        error = ValidationError(message, field="legs")
        logger.warning(f"Rejected request to {request.url.path}: {error}")
        return JSONResponse(status_code=400, content=validation_error_body(error))

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/open-interest")
    def open_interest(
        identifier: Optional[str] = Query(None, description="Index or equity symbol (e.g., NIFTY)"),
    ):
        """
        Get the normalized option chain for a symbol.

        Cookies are fetched fresh for every request; the chain fetch is
        retried per the configured retry policy.
        """
        logger.info(f"Request received at {datetime.now().strftime('%H:%M:%S')}")

        if not identifier or not identifier.strip():
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid request. No identifier was given."},
            )

        client = create_client(config)
        try:
            return client.fetch_option_chain(identifier)
        except UpstreamError as e:
            logger.error(f"Proxy request error for {identifier}: {e}")
            return JSONResponse(status_code=500, content={"error": "Proxy request failed."})
        finally:
            client.close()

    @app.post("/builder")
    def builder(payload: Any = Body(...)):
        """
        Compute the expiry payoff of a multi-leg strategy.

        Body: {"legs": [{"strike", "premium", "quantity", "optionType", "direction"}, ...]}
        """
        try:
            strategy = parse_strategy(payload)
            result = compute_payoff(strategy, grid_points=config.grid_points)
        except ValidationError as e:
            logger.warning(f"Rejected builder request: {e}")
            return JSONResponse(status_code=400, content=validation_error_body(e))
        except Exception as e:
            logger.error(f"Payoff calculation error: {e}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content=error_body("PAYOFF_FAILED", "Payoff calculation failed."),
            )

        return payoff_to_dict(result)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=app.state.config.host,
        port=app.state.config.port,
        log_level="info",
        access_log=True,
    )
