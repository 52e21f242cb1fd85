from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from delay_cover.core.models import CoverageTier, OraclePhase


# ---------------------------------------------------------------------------
# Outbound oracle requests
# ---------------------------------------------------------------------------

@dataclass
class RatingRequest:
    request_id: str                      # minted and registered before dispatch
    risk_id: str
    journey_descriptor: str
    scheduled_arrival_time: int          # unix seconds
    coverage_tier: CoverageTier
    premium: int
    phase: OraclePhase = OraclePhase.RATING
    callback_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "phase": self.phase.value,
            "journey": self.journey_descriptor,
            "scheduled_arrival_time": self.scheduled_arrival_time,
            "coverage_tier": self.coverage_tier.value,
            "premium": self.premium,
            "callback_url": self.callback_url,
            "metadata": self.metadata,
        }


@dataclass
class StatusRequest:
    request_id: str
    risk_id: str
    journey_descriptor: str
    scheduled_arrival_time: int
    phase: OraclePhase = OraclePhase.STATUS
    callback_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "phase": self.phase.value,
            "journey": self.journey_descriptor,
            "scheduled_arrival_time": self.scheduled_arrival_time,
            "callback_url": self.callback_url,
            "metadata": self.metadata,
        }


# ---------------------------------------------------------------------------
# Abstract collaborator interfaces
# ---------------------------------------------------------------------------

class Treasury(ABC):
    """Holds customer funds committed to a policy application."""

    @abstractmethod
    def reserve(self, customer: str, amount: int) -> None:
        """Confirm the customer pre-committed `amount`. Raises InsufficientFunds otherwise."""

    @abstractmethod
    def collect(self, customer: str, amount: int) -> int:
        """Collect the premium and return the amount actually collected."""


class ClaimsLedger(ABC):
    """Claim and payout bookkeeping owned by the insurance framework."""

    @abstractmethod
    def open_claim(self, policy_id: str, amount: int) -> str:
        """Open a claim against a policy and return its claim id."""

    @abstractmethod
    def confirm(self, policy_id: str, claim_id: str, amount: int) -> None:
        """Confirm the claim for the given amount."""

    @abstractmethod
    def pay(self, policy_id: str, claim_id: str) -> str:
        """Transfer the payout and return its payout id."""


class OracleDispatcher(ABC):
    """Fire-and-forget channel to an external data provider."""

    @abstractmethod
    def dispatch(self, request) -> str:
        """Send a RatingRequest / StatusRequest and return its request id."""
