#!/usr/bin/env python3
"""Chaos scenario: many buyers race for the last units of one product.

Each synthetic buyer puts the same product in their cart, then every buyer
submits an order at once. The run fails when more orders commit than the
known stock allows, or when the refused orders are not reported as
``insufficient_stock``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

import httpx


@dataclass(slots=True)
class OrderAttempt:
    user_id: int
    status_code: int
    kind: str | None
    duration_seconds: float


class ChaosError(RuntimeError):
    def __init__(self, message: str, *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context: Dict[str, Any] = dict(context or {})


def _env_default(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value else default


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Race concurrent orders against limited stock")
    parser.add_argument(
        "--base-url",
        default=_env_default("ORDER_BASE_URL", "http://127.0.0.1:8000"),
        help="Base URL for the order service (default: %(default)s or ORDER_BASE_URL)",
    )
    parser.add_argument(
        "--product-id",
        type=int,
        default=int(_env_default("OVERSELL_PRODUCT_ID", "1")),
        help="Product every buyer orders (default: %(default)s or OVERSELL_PRODUCT_ID)",
    )
    parser.add_argument(
        "--stock",
        type=int,
        required=True,
        help="Units of the product in stock before the run",
    )
    parser.add_argument(
        "--buyers",
        type=int,
        default=int(_env_default("OVERSELL_BUYERS", "20")),
        help="Number of concurrent buyers (default: %(default)s or OVERSELL_BUYERS)",
    )
    parser.add_argument(
        "--quantity",
        type=int,
        default=1,
        help="Units each buyer orders (default: %(default)s)",
    )
    parser.add_argument(
        "--first-user-id",
        type=int,
        default=int(_env_default("OVERSELL_FIRST_USER_ID", "900000")),
        help="User id of the first synthetic buyer (default: %(default)s or OVERSELL_FIRST_USER_ID)",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=float(_env_default("OVERSELL_REQUEST_TIMEOUT", "10")),
        help="HTTP client timeout in seconds (default: %(default)s or OVERSELL_REQUEST_TIMEOUT)",
    )

    args = parser.parse_args()
    if args.buyers <= 0:
        parser.error("--buyers must be positive")
    if args.quantity <= 0:
        parser.error("--quantity must be positive")
    if args.stock < 0:
        parser.error("--stock must not be negative")
    return args


def _headers(user_id: int) -> Dict[str, str]:
    return {"X-User-Id": str(user_id), "X-User-Role": "user"}


async def _fill_cart(client: httpx.AsyncClient, args: argparse.Namespace, user_id: int) -> None:
    response = await client.post(
        "/cart/items",
        json={"productId": args.product_id, "quantity": args.quantity},
        headers=_headers(user_id),
    )
    if response.status_code != 201:
        raise ChaosError(
            "failed to fill cart",
            context={"userId": user_id, "status": response.status_code, "body": response.text},
        )


async def _place_order(client: httpx.AsyncClient, user_id: int) -> OrderAttempt:
    start = time.monotonic()
    response = await client.post("/orders", json={"couponCodes": []}, headers=_headers(user_id))
    duration = time.monotonic() - start
    kind = None
    if response.status_code != 201:
        try:
            kind = response.json().get("kind")
        except ValueError:
            kind = "unparseable"
    return OrderAttempt(user_id=user_id, status_code=response.status_code, kind=kind, duration_seconds=duration)


async def run(args: argparse.Namespace) -> Mapping[str, Any]:
    buyers: List[int] = [args.first_user_id + offset for offset in range(args.buyers)]
    timeout = httpx.Timeout(args.request_timeout)
    async with httpx.AsyncClient(base_url=args.base_url, timeout=timeout) as client:
        for user_id in buyers:
            await _fill_cart(client, args, user_id)
        attempts = await asyncio.gather(*(_place_order(client, user_id) for user_id in buyers))

    created = [attempt for attempt in attempts if attempt.status_code == 201]
    refusals = Counter(attempt.kind for attempt in attempts if attempt.status_code != 201)
    allowed = args.stock // args.quantity
    result = {
        "buyers": args.buyers,
        "stock": args.stock,
        "allowedOrders": allowed,
        "createdOrders": len(created),
        "refusals": dict(refusals),
        "slowestSeconds": round(max(attempt.duration_seconds for attempt in attempts), 3),
    }
    if len(created) > allowed:
        raise ChaosError("oversell detected", context=result)
    unexpected = {kind: count for kind, count in refusals.items() if kind != "insufficient_stock"}
    if unexpected:
        raise ChaosError("orders refused for unexpected reasons", context=result)
    return {"status": "ok", **result}


def main() -> int:
    args = parse_args()
    try:
        result = asyncio.run(run(args))
    except ChaosError as exc:
        payload = {
            "status": "error",
            "message": str(exc),
            "context": exc.context,
        }
        json.dump(payload, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 2
    except Exception as exc:  # noqa: BLE001
        payload = {
            "status": "error",
            "message": str(exc),
        }
        json.dump(payload, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 3

    json.dump(result, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
