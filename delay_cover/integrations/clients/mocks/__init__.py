"""
Mock integration clients.

These clients return fake (but realistic) responses without calling any external API.
They are used when:
- Provider endpoints are not configured
- We want to test the lifecycle end-to-end without external dependencies

Important:
- Mock clients must follow the SAME interface as real HTTP clients.
- Mock clients should return data shaped according to delay_cover/integrations/contracts/*
"""

from .claims import MockClaimsLedger
from .oracle import MockOracleDispatcher
from .treasury import MockTreasury

__all__ = ["MockClaimsLedger", "MockOracleDispatcher", "MockTreasury"]
