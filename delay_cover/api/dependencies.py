import os
import hmac
import logging
from typing import Callable, List

from fastapi import Header, HTTPException, Request, status
from dotenv import load_dotenv

from delay_cover.product import DelayCoverProduct

load_dotenv()

logger = logging.getLogger(__name__)

ROLES = ("customer", "oracle", "keeper")


def get_api_keys(role: str) -> List[str]:
    keys = os.getenv(f"API_KEYS_{role.upper()}", "")
    return [k.strip() for k in keys.split(",") if k.strip()]


def require_role(role: str) -> Callable:
    """
    Authorization gate ahead of the lifecycle operations.

    Each caller class (customer, oracle provider, keeper) has its own key list
    in API_KEYS_<ROLE>; a key only opens the endpoints of its role.
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role '{role}'")

    async def _check(
        request: Request,
        x_api_key: str = Header(default=None, alias="X-API-KEY"),
    ) -> str:
        debug = os.getenv("API_KEY_DEBUG", "").lower() in ("1", "true", "yes")
        path = request.url.path

        valid_keys = get_api_keys(role)
        candidate = (x_api_key or "").strip()
        ok = bool(candidate) and any(hmac.compare_digest(candidate, k) for k in valid_keys)
        if debug:
            logger.info("API key check: role=%s path=%s ok=%s configured_keys=%d", role, path, ok, len(valid_keys))

        if not ok:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid or missing API Key for role '{role}'",
            )
        return role

    return _check


def get_product(request: Request) -> DelayCoverProduct:
    return request.app.state.product
