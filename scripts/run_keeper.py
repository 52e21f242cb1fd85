#!/usr/bin/env python3
"""
Keeper loop: polls the delay cover API for due status checks and executes them.

Start the API first (in another terminal):
  uvicorn delay_cover.api.main:app --host 127.0.0.1 --port 8000

Then run:
  API_KEY=<keeper key> python scripts/run_keeper.py
  python scripts/run_keeper.py --base-url http://127.0.0.1:8000 --api-key <key> --once

Every tick drains the backlog (older buckets nobody executed) before the current bucket.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger("keeper")


class KeeperClient:
    def __init__(self, base_url: str, api_key: str, timeout: int = 30) -> None:
        self.base = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"X-API-KEY": api_key})

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        r = self.session.get(f"{self.base}{path}", params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _post(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        r = self.session.post(f"{self.base}{path}", json=data, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def due(self) -> Dict[str, Any]:
        return self._get("/api/v1/keeper/due")

    def backlog(self) -> Dict[str, Any]:
        return self._get("/api/v1/keeper/backlog")

    def execute(self, bucket: int) -> Dict[str, Any]:
        return self._post("/api/v1/keeper/execute", {"bucket": bucket})


def tick(client: KeeperClient) -> int:
    """Run one keeper pass. Returns the number of status requests dispatched."""
    dispatched = 0
    for bucket in client.backlog().get("buckets", []):
        report = client.execute(bucket)
        dispatched += len(report.get("dispatched", []))
        logger.info("Backlog bucket %s: %s", bucket, report)

    due = client.due()
    if due.get("due"):
        report = client.execute(due["bucket"])
        dispatched += len(report.get("dispatched", []))
        logger.info("Bucket %s: %s", due["bucket"], report)
    else:
        logger.info("Nothing due in bucket %s", due.get("bucket"))
    return dispatched


def main() -> int:
    parser = argparse.ArgumentParser(description="Poll and execute due delay cover status checks")
    parser.add_argument("--base-url", default=os.getenv("DELAY_COVER_API_URL", "http://localhost:8000"))
    parser.add_argument("--api-key", default=os.getenv("API_KEY", ""), help="Keeper API key")
    parser.add_argument("--interval", type=int, default=60, help="Seconds between ticks")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )
    if not args.api_key:
        print("Keeper API key missing: pass --api-key or set API_KEY", file=sys.stderr)
        return 1

    client = KeeperClient(args.base_url, args.api_key)
    while True:
        try:
            tick(client)
        except requests.RequestException as e:
            logger.error("Keeper tick failed: %s", e)
            if args.once:
                return 2
        if args.once:
            return 0
        time.sleep(args.interval)


if __name__ == "__main__":
    sys.exit(main())
