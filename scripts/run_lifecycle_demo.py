#!/usr/bin/env python3
"""
Run two policies through the full lifecycle in-process with mock collaborators
and print each stage to the terminal: one delayed flight (paid) and one on time
(expired).

Usage (from repo root):
  python scripts/run_lifecycle_demo.py
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from delay_cover.integrations.clients.mocks import MockClaimsLedger, MockOracleDispatcher, MockTreasury
from delay_cover.product import build_product
from delay_cover.utils.config_loader import load_product_config


def setup_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )


def print_stage(title: str, data):
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)
    if isinstance(data, (dict, list)):
        print(json.dumps(data, indent=2, default=str))
    else:
        print(data)
    print()


class DemoClock:
    def __init__(self, start: int) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now


def main() -> int:
    setup_logging()
    config = load_product_config()
    clock = DemoClock(1_700_000_000)
    rating_oracle = MockOracleDispatcher(name="rating")
    status_oracle = MockOracleDispatcher(name="status")
    claims = MockClaimsLedger()
    product = build_product(
        config,
        treasury=MockTreasury(),
        claims=claims,
        rating_oracle=rating_oracle,
        status_oracle=status_oracle,
        clock=clock,
    )

    arrival = clock.now + 6 * 3600
    delayed = product.apply("alice", "standard", "LH/410/2023-11-14", arrival)
    on_time = product.apply("bob", "basic", "LH/412/2023-11-14", arrival)
    print_stage("APPLICATIONS", [delayed.to_dict(), on_time.to_dict()])

    for risk in (delayed, on_time):
        request = rating_oracle.last_for(risk.id)
        outcome = product.fulfill_rating(request.request_id, {"status": "OK", "payout_amount": 50})
        print_stage(f"RATING {risk.customer}", {"accepted": outcome.accepted, "status_due_at": outcome.status_due_at})

    clock.now = arrival + config.scheduling.monitoring_offset_seconds + config.scheduling.poll_interval_seconds
    for bucket in product.backlog():
        print_stage(f"KEEPER BACKLOG BUCKET {bucket}", product.execute_due(bucket).__dict__)
    due = product.due_now()
    if due.is_due:
        print_stage(f"KEEPER BUCKET {due.bucket}", product.execute_due(due.bucket).__dict__)

    for risk, delay in ((delayed, 95), (on_time, 10)):
        request = status_oracle.last_for(risk.id)
        outcome = product.fulfill_status(request.request_id, {"status": "OK", "delay_minutes": delay})
        print_stage(f"STATUS {risk.customer}", outcome.__dict__)

    print_stage("RISK VIEW (paid)", product.risk_view(delayed.id))
    print_stage("CLAIMS PAID", claims.payouts)
    print_stage("STATS", product.stats())
    return 0


if __name__ == "__main__":
    sys.exit(main())
