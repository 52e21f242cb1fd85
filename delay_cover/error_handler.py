"""Error handling helpers for the delay cover API."""
from typing import Any, Dict
import logging

from delay_cover.errors import DelayCoverError, UnknownRequest, UnknownRisk
from delay_cover.integrations.contracts.oracles import IntegrationResponseError

logger = logging.getLogger(__name__)

_STATUS_BY_CATEGORY = {
    "validation": 422,
    "invariant": 409,
    "collaborator": 502,
    "not_supported": 501,
}


class ErrorHandler:
    def status_code_for(self, exc: Exception) -> int:
        if isinstance(exc, (UnknownRequest, UnknownRisk)):
            return 404
        if isinstance(exc, IntegrationResponseError):
            return 422
        if isinstance(exc, DelayCoverError):
            return _STATUS_BY_CATEGORY.get(exc.category, 500)
        return 500

    def handle_exception(self, exc: Exception, context: Dict[str, Any] = None) -> Dict[str, Any]:
        if isinstance(exc, DelayCoverError):
            # Invariant violations mean a duplicate callback or an upstream bug.
            log = logger.error if exc.category == "invariant" else logger.warning
            log("%s: %s", type(exc).__name__, exc)
            return {
                "message": str(exc),
                "error": type(exc).__name__,
                "category": exc.category,
                "metadata": {"context": {**exc.context, **(context or {})}},
            }
        if isinstance(exc, IntegrationResponseError):
            logger.warning("Rejected oracle payload: %s", exc)
            return {
                "message": str(exc),
                "error": "IntegrationResponseError",
                "category": "validation",
                "metadata": {"payload": exc.payload, "context": context or {}},
            }

        logger.error("Unhandled exception in delay cover service: %s", exc, exc_info=True)
        return {
            "message": "An internal error occurred while processing your request. Please try again later.",
            "error": type(exc).__name__,
            "category": "internal",
            "metadata": {"error": str(exc), "context": context or {}},
        }
