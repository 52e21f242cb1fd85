"""
Integrations layer.
This package contains all code used to communicate with external systems:
- Rating provider (route risk assessment, proposes a payout)
- Status provider (observed arrival delay)
- Treasury (premium reservation and collection)
- Claims ledger (claim, confirmation and payout)

Key rule:
- The lifecycle core MUST NOT call external APIs directly.
- It talks to the abstract collaborators in contracts/interfaces.py.
- We use MOCK clients during development and swap to REAL_HTTP clients when endpoints are available.

Switching implementations:
- The selection of mock vs real clients happens in ONE place (delay_cover/product.py).
"""

from .contracts.interfaces import (
    ClaimsLedger,
    OracleDispatcher,
    RatingRequest,
    StatusRequest,
    Treasury,
)
from .contracts.oracles import (
    IntegrationResponseError,
    RatingResponse,
    RatingStatus,
    StatusResponse,
    StatusResult,
    normalize_rating_response,
    normalize_status_response,
)

__all__ = [
    # interfaces
    "ClaimsLedger", "OracleDispatcher", "RatingRequest", "StatusRequest", "Treasury",
    # oracle payloads
    "IntegrationResponseError", "RatingResponse", "RatingStatus", "StatusResponse",
    "StatusResult", "normalize_rating_response", "normalize_status_response",
]
