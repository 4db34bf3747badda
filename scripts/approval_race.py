#!/usr/bin/env python3
"""Fire concurrent approvals at a running server and report who won each slot."""

from __future__ import annotations

import argparse
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
import json
import statistics
import time
from urllib import error, request


def _post_json(url: str, payload: dict | None, headers: dict[str, str] | None = None) -> tuple[int, dict, float]:
    req = request.Request(
        url,
        data=json.dumps(payload or {}).encode("utf-8"),
        headers={"Content-Type": "application/json", **(headers or {})},
        method="POST",
    )
    started = time.perf_counter()
    try:
        with request.urlopen(req, timeout=20) as response:
            body = response.read().decode("utf-8")
            status = response.status
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8")
        status = exc.code
    latency_ms = (time.perf_counter() - started) * 1000.0
    return status, (json.loads(body) if body else {}), latency_ms


def main() -> None:
    parser = argparse.ArgumentParser(description="Race approvals for slot requests")
    parser.add_argument("--base-url", default="http://127.0.0.1:8000", help="API base URL")
    parser.add_argument("--admin-token", required=True, help="Bearer token of an admin account")
    parser.add_argument("--request-ids", required=True, help="Comma-separated pending request ids")
    parser.add_argument("--concurrency", type=int, default=10, help="Parallel workers")
    args = parser.parse_args()

    base_url = args.base_url.rstrip("/")
    headers = {"Authorization": f"Bearer {args.admin_token}"}
    request_ids = [int(item) for item in args.request_ids.split(",") if item.strip()]

    outcomes: Counter[int] = Counter()
    assigned: Counter[str] = Counter()
    latencies: list[float] = []

    with ThreadPoolExecutor(max_workers=args.concurrency) as pool:
        futures = [
            pool.submit(_post_json, f"{base_url}/requests/{request_id}/approve", None, headers)
            for request_id in request_ids
        ]
        for future in as_completed(futures):
            status, body, latency_ms = future.result()
            outcomes[status] += 1
            latencies.append(latency_ms)
            slot = body.get("slot") or {}
            if status == 200 and slot.get("slot_number"):
                assigned[str(slot["slot_number"])] += 1

    print("status counts:", dict(outcomes))
    print("approvals per slot:", dict(assigned))
    double_booked = [slot for slot, count in assigned.items() if count > 1]
    print("double-booked slots:", double_booked or "none")
    if latencies:
        print(f"avg_ms={statistics.fmean(latencies):.1f} max_ms={max(latencies):.1f}")


if __name__ == "__main__":
    main()
