#!/usr/bin/env python3
"""Burst concurrent token and resource reads at the portal and count network calls."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import time
from dataclasses import dataclass, field

import httpx

from portalclient.client import PortalClient, build_client
from portalclient.config import ClientConfig
from portalclient.fake_api import FakeApiState, create_fake_app
from portalclient.schemas import LoginRequest
from portalclient.storage import InMemoryStore


@dataclass
class StormStats:
    rounds: int = 0
    token_calls: int = 0
    tokens_missing: int = 0
    resource_calls: int = 0
    failed: int = 0
    distinct_tokens: set[str] = field(default_factory=set)
    latencies: list[float] = field(default_factory=list)


def percentile(values: list[float], quantile: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    index = min(len(ordered) - 1, int(round((len(ordered) - 1) * quantile)))
    return ordered[index]


async def storm_round(client: PortalClient, callers: int, stats: StormStats) -> None:
    started = time.monotonic()
    token_results = await asyncio.gather(
        *(client.credentials.get_valid_token() for _ in range(callers))
    )
    stats.token_calls += callers
    for token in token_results:
        if token is None:
            stats.tokens_missing += 1
        else:
            stats.distinct_tokens.add(token.access)

    resource_results = await asyncio.gather(
        *(client.user_profile.get_my_user() for _ in range(callers)),
        *(client.brands.get_by_id(1) for _ in range(callers)),
        return_exceptions=True,
    )
    stats.resource_calls += len(resource_results)
    stats.failed += sum(1 for result in resource_results if isinstance(result, Exception))
    stats.latencies.append(time.monotonic() - started)
    stats.rounds += 1


async def run_storm(
    base_url: str | None,
    email: str,
    password: str,
    callers: int,
    rounds: int,
    token_lifetime_seconds: int,
    latency_seconds: float,
) -> tuple[StormStats, dict[str, int] | None]:
    fake_state: FakeApiState | None = None
    http_client: httpx.AsyncClient | None = None
    if base_url is None:
        fake_state = FakeApiState(
            token_lifetime_seconds=token_lifetime_seconds,
            latency_seconds=latency_seconds,
        )
        http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=create_fake_app(fake_state)))
        base_url = "http://fake-portal"

    config = ClientConfig(base_url=base_url, users_base_url=base_url)
    client = build_client(config, store=InMemoryStore(), http_client=http_client)
    stats = StormStats()
    try:
        await asyncio.gather(
            *(client.credentials.login(LoginRequest(email=email, password=password)) for _ in range(callers))
        )
        for _ in range(rounds):
            await storm_round(client, callers=callers, stats=stats)
    finally:
        await client.aclose()
        if http_client is not None:
            await http_client.aclose()

    return stats, dict(fake_state.calls) if fake_state is not None else None


def main() -> None:
    parser = argparse.ArgumentParser(description="Fire concurrent portal reads and report deduplication.")
    parser.add_argument("--base-url", default=None, help="Live portal URL; defaults to an in-process fake")
    parser.add_argument("--email", default="demo@example.com")
    parser.add_argument("--password", default="demo-password")
    parser.add_argument("--callers", type=int, default=20)
    parser.add_argument("--rounds", type=int, default=5)
    parser.add_argument(
        "--token-lifetime-seconds",
        type=int,
        default=30,
        help="Fake API only; values under the 60s guard window refresh every round",
    )
    parser.add_argument("--latency-seconds", type=float, default=0.05, help="Fake API only")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    stats, server_calls = asyncio.run(
        run_storm(
            base_url=args.base_url,
            email=args.email,
            password=args.password,
            callers=args.callers,
            rounds=args.rounds,
            token_lifetime_seconds=args.token_lifetime_seconds,
            latency_seconds=args.latency_seconds,
        )
    )

    report = {
        "callers": args.callers,
        "rounds": stats.rounds,
        "token_calls": stats.token_calls,
        "tokens_missing": stats.tokens_missing,
        "distinct_access_tokens": len(stats.distinct_tokens),
        "resource_calls": stats.resource_calls,
        "failed": stats.failed,
        "round_p50_ms": percentile(stats.latencies, 0.50) * 1000,
        "round_p95_ms": percentile(stats.latencies, 0.95) * 1000,
        "server_calls": server_calls,
    }
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
