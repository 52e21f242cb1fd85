"""
FastAPI application - Main entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from delay_cover import __version__
from delay_cover.api.endpoints.applications import router as applications_router
from delay_cover.api.endpoints.keeper import router as keeper_router
from delay_cover.api.endpoints.keeper import stats_router
from delay_cover.api.endpoints.oracle_callbacks import router as oracle_router
from delay_cover.error_handler import ErrorHandler
from delay_cover.errors import DelayCoverError
from delay_cover.integrations.contracts.oracles import IntegrationResponseError
from delay_cover.product import DelayCoverProduct, build_product

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

error_handler = ErrorHandler()


def create_app(product: Optional[DelayCoverProduct] = None) -> FastAPI:
    app = FastAPI(
        title="Flight Delay Cover API",
        description="Parametric flight delay insurance: applications, oracle callbacks and keeper ticks",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.product = product or build_product()

    @app.exception_handler(DelayCoverError)
    async def delay_cover_error(request: Request, exc: DelayCoverError):
        body = error_handler.handle_exception(exc, {"path": request.url.path})
        return JSONResponse(status_code=error_handler.status_code_for(exc), content=body)

    @app.exception_handler(IntegrationResponseError)
    async def integration_response_error(request: Request, exc: IntegrationResponseError):
        body = error_handler.handle_exception(exc, {"path": request.url.path})
        return JSONResponse(status_code=error_handler.status_code_for(exc), content=body)

    app.include_router(applications_router, prefix="/api/v1")
    app.include_router(oracle_router, prefix="/api/v1")
    app.include_router(keeper_router, prefix="/api/v1")
    app.include_router(stats_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health_check():
        current = app.state.product
        return {
            "status": "healthy",
            "service": "flight-delay-cover",
            "version": __version__,
            "storage": {
                "risks": type(current.lifecycle.store).__name__,
                "correlator": type(current.correlator.store).__name__,
                "schedule": type(current.scheduler.store).__name__,
            },
            "timestamp": datetime.now().isoformat(),
        }

    return app


app = create_app()
