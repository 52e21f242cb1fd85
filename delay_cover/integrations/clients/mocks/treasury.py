"""
Treasury: MOCK client.

Keeps per-customer committed balances in memory. Customers without an explicit
balance get `default_balance`. The collection can be made to under-collect or
fail to exercise the abort paths.
"""

import logging
from typing import Dict, List, Optional, Tuple

from delay_cover.errors import InsufficientFunds
from delay_cover.integrations.contracts.interfaces import Treasury

logger = logging.getLogger(__name__)


class MockTreasury(Treasury):
    """
    Parameters
    ----------
    balances : dict
        Committed funds per customer.
    default_balance : int
        Balance for customers not listed in `balances`.
    collect_shortfall : int
        Subtracted from every collection (simulates a partial collection).
    fail_collection : bool
        If True, every collection raises.
    """

    def __init__(
        self,
        balances: Optional[Dict[str, int]] = None,
        default_balance: int = 1_000,
        collect_shortfall: int = 0,
        fail_collection: bool = False,
    ):
        self._balances: Dict[str, int] = dict(balances or {})
        self._default_balance = default_balance
        self._shortfall = collect_shortfall
        self._fail_collection = fail_collection

        self.reservations: List[Tuple[str, int]] = []
        self.collections: List[Tuple[str, int]] = []

        logger.info("[TREASURY MOCK] Client initialised (default_balance=%s)", default_balance)

    def balance_of(self, customer: str) -> int:
        return self._balances.get(customer, self._default_balance)

    def reserve(self, customer: str, amount: int) -> None:
        balance = self.balance_of(customer)
        if balance < amount:
            logger.info("[TREASURY MOCK] %s cannot cover %s (balance=%s)", customer, amount, balance)
            raise InsufficientFunds(
                f"Customer {customer} has {balance} committed; {amount} required.",
                context={"customer": customer, "required": amount, "available": balance},
            )
        self.reservations.append((customer, amount))

    def collect(self, customer: str, amount: int) -> int:
        if self._fail_collection:
            raise RuntimeError("[TREASURY MOCK] collection rejected")
        collected = max(amount - self._shortfall, 0)
        self._balances[customer] = self.balance_of(customer) - collected
        self.collections.append((customer, collected))
        logger.info("[TREASURY MOCK] Collected %s from %s", collected, customer)
        return collected

    @property
    def total_collected(self) -> int:
        return sum(amount for _, amount in self.collections)
