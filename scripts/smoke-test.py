#!/usr/bin/env python3
"""
Smoke test for sealed staging/production deployments.

Runs the full sender and recipient flow against a live deployment using the
bundled client library (install the project first: ``pip install -e .``).

Flow (default):
1. Health check
2. Seal a secret (challenge, solve, redeem, encrypt, create)
3. Open it (fetch, decrypt, compare)
4. Re-open is not available
5. Passphrase round trip
6. Burn a secret and confirm it is gone

Usage:
    ./scripts/smoke-test.py https://staging.example.com
    ./scripts/smoke-test.py https://staging.example.com --health-only
"""

import argparse
import secrets
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import httpx

from sealed.client import SealedClient, SealedLink
from sealed.exceptions import NotAvailable

DEFAULT_TIMEOUT_SECONDS = 30.0
# Shortest TTL the service accepts; smoke secrets should not linger.
SMOKE_TTL_SECONDS = 900


def log(msg: str) -> None:
    """Print timestamped log message."""
    print(f"[{datetime.now().strftime('%H:%M:%S')}] {msg}", flush=True)


def wait_for_health(http: httpx.Client, max_attempts: int = 30, delay: float = 2.0) -> bool:
    """Wait for /health to return healthy status."""
    for attempt in range(1, max_attempts + 1):
        try:
            response = http.get("/health", timeout=10.0)
            if response.status_code == 200 and response.json().get("status") == "healthy":
                log(f"Health check passed (attempt {attempt})")
                return True
        except (httpx.HTTPError, ValueError):
            pass

        if attempt < max_attempts:
            time.sleep(delay)

    return False


@dataclass
class SmokeContext:
    http: httpx.Client
    client: SealedClient
    max_health_attempts: int

    plaintext: bytes = b""
    link: SealedLink | None = None

    def require_link(self) -> SealedLink:
        if not self.link:
            raise RuntimeError("Missing link (step ordering bug)")
        return self.link


@dataclass(frozen=True)
class Step:
    name: str
    run: Callable[[SmokeContext], None]


@dataclass(frozen=True)
class StepResult:
    name: str
    status: str  # passed|failed
    seconds: float
    detail: str | None = None


def _print_summary(results: list[StepResult], total_seconds: float) -> None:
    log("Summary:")
    for result in results:
        suffix = f" - {result.detail}" if result.detail else ""
        log(f"  {result.status.upper():7} {result.name} ({result.seconds:.2f}s){suffix}")
    log(f"Total: {total_seconds:.2f}s")


def run_steps(ctx: SmokeContext, steps: list[Step]) -> bool:
    results: list[StepResult] = []
    overall_start = time.time()

    for step in steps:
        log(f"STEP: {step.name}")
        start = time.time()
        try:
            step.run(ctx)
        except Exception as e:
            elapsed = time.time() - start
            results.append(StepResult(step.name, "failed", elapsed, f"{type(e).__name__}: {e}"))
            _print_summary(results, time.time() - overall_start)
            return False

        elapsed = time.time() - start
        results.append(StepResult(step.name, "passed", elapsed))
        log(f"OK: {step.name} ({elapsed:.2f}s)")

    _print_summary(results, time.time() - overall_start)
    return True


def step_health(ctx: SmokeContext) -> None:
    if not wait_for_health(ctx.http, max_attempts=ctx.max_health_attempts):
        raise RuntimeError("Health check failed")


def step_seal(ctx: SmokeContext) -> None:
    ctx.plaintext = f"smoke-{secrets.token_hex(8)}".encode()
    ctx.link = ctx.client.seal(ctx.plaintext, ttl=SMOKE_TTL_SECONDS)
    log(f"  Sealed, expires {ctx.link.expires_at}")


def step_open(ctx: SmokeContext) -> None:
    opened = ctx.client.open(ctx.require_link().url)
    if opened != ctx.plaintext:
        raise RuntimeError("Decrypted plaintext does not match")


def step_reopen_absent(ctx: SmokeContext) -> None:
    try:
        ctx.client.open(ctx.require_link().url)
    except NotAvailable:
        return
    raise RuntimeError("Secret was served twice")


def step_passphrase(ctx: SmokeContext) -> None:
    passphrase = secrets.token_urlsafe(12)
    link = ctx.client.seal(b"smoke passphrase", passphrase=passphrase, ttl=SMOKE_TTL_SECONDS)
    if ctx.client.open(link.url, passphrase=passphrase) != b"smoke passphrase":
        raise RuntimeError("Passphrase round trip mismatch")


def step_burn(ctx: SmokeContext) -> None:
    link = ctx.client.seal(b"smoke burn", ttl=SMOKE_TTL_SECONDS)
    ctx.client.burn_secret(link.secret_id, link.burn_token)
    try:
        ctx.client.open(link.url)
    except NotAvailable:
        return
    raise RuntimeError("Burned secret is still available")


def main() -> int:
    parser = argparse.ArgumentParser(description="sealed smoke test")
    parser.add_argument("base_url", help="Base URL (e.g., https://staging.example.com)")
    parser.add_argument(
        "--health-only",
        action="store_true",
        help="Only run health check, skip full flow",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"HTTP timeout seconds (default: {DEFAULT_TIMEOUT_SECONDS:g})",
    )
    parser.add_argument(
        "--max-health-attempts",
        type=int,
        default=30,
        help="Max health check attempts (default: 30)",
    )
    args = parser.parse_args()

    try:
        base_url = args.base_url.rstrip("/")
        with httpx.Client(base_url=base_url, timeout=args.timeout) as http:
            ctx = SmokeContext(
                http=http,
                client=SealedClient(http=http),
                max_health_attempts=args.max_health_attempts,
            )

            steps: list[Step] = [Step("health", step_health)]
            if args.health_only:
                log("Health-only mode: skipping full flow")
            else:
                steps.extend(
                    [
                        Step("seal", step_seal),
                        Step("open", step_open),
                        Step("re-open absent", step_reopen_absent),
                        Step("passphrase", step_passphrase),
                        Step("burn", step_burn),
                    ]
                )

            ok = run_steps(ctx, steps)
        return 0 if ok else 1
    except Exception as e:
        log(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
