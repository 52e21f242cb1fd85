"""
Claims ledger: MOCK client.

Records claims and payouts in memory. `fail_on` makes one of the three steps
("open", "confirm", "pay") raise so the settlement abort path can be tested.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from delay_cover.integrations.contracts.interfaces import ClaimsLedger

logger = logging.getLogger(__name__)


@dataclass
class MockClaim:
    claim_id: str
    policy_id: str
    amount: int
    confirmed: bool = False
    payout_id: Optional[str] = None


class MockClaimsLedger(ClaimsLedger):
    def __init__(self, fail_on: Optional[str] = None):
        self._fail_on = fail_on
        self.claims: Dict[str, MockClaim] = {}
        self.payouts: List[str] = []

    def open_claim(self, policy_id: str, amount: int) -> str:
        self._maybe_fail("open")
        claim_id = f"CLM-{uuid.uuid4().hex[:10].upper()}"
        self.claims[claim_id] = MockClaim(claim_id=claim_id, policy_id=policy_id, amount=amount)
        logger.info("[CLAIMS MOCK] Opened claim %s on policy %s for %s", claim_id, policy_id, amount)
        return claim_id

    def confirm(self, policy_id: str, claim_id: str, amount: int) -> None:
        self._maybe_fail("confirm")
        claim = self._claim(policy_id, claim_id)
        if claim.amount != amount:
            raise ValueError(f"Claim {claim_id} was opened for {claim.amount}, not {amount}")
        claim.confirmed = True

    def pay(self, policy_id: str, claim_id: str) -> str:
        self._maybe_fail("pay")
        claim = self._claim(policy_id, claim_id)
        if not claim.confirmed:
            raise ValueError(f"Claim {claim_id} is not confirmed")
        if claim.payout_id:
            raise ValueError(f"Claim {claim_id} is already paid")
        claim.payout_id = f"PAY-{uuid.uuid4().hex[:10].upper()}"
        self.payouts.append(claim.payout_id)
        logger.info("[CLAIMS MOCK] Paid claim %s (%s)", claim_id, claim.payout_id)
        return claim.payout_id

    def claims_for(self, policy_id: str) -> List[MockClaim]:
        return [c for c in self.claims.values() if c.policy_id == policy_id]

    def _claim(self, policy_id: str, claim_id: str) -> MockClaim:
        claim = self.claims.get(claim_id)
        if claim is None or claim.policy_id != policy_id:
            raise KeyError(f"Unknown claim {claim_id} for policy {policy_id}")
        return claim

    def _maybe_fail(self, step: str) -> None:
        if self._fail_on == step:
            raise RuntimeError(f"[CLAIMS MOCK] {step} rejected")
