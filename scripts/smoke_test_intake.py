#!/usr/bin/env python3
"""Smoke-test the intake integrations with real API calls.

Reads config from .env, classifies a couple of canned messages and, when an
OpenPhone key is configured, lists the last hour of messages. Nothing is
written to Google Sheets or Slack.

Usage:
    python scripts/smoke_test_intake.py                 # classifier + OpenPhone
    python scripts/smoke_test_intake.py --skip-fetch    # classifier only
"""
from __future__ import annotations

import argparse
import asyncio
import sys
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from order_intake.channels.openphone import OpenPhoneSource
from order_intake.config import Settings
from order_intake.models.message import Message, MessageDirection
from order_intake.pipeline.classify import Classifier

SAMPLE_MESSAGES = {
    "order": "Hi, can I get 2 dozen oysters for pickup tomorrow? This is Jane, 555-1234",
    "not_order": "What are your hours on Saturday?",
}


async def check_classifier(classifier: Classifier) -> bool:
    ok = True
    for label, body in SAMPLE_MESSAGES.items():
        message = Message(
            id=f"smoke-{label}",
            direction=MessageDirection.INBOUND,
            sender="+15555550100",
            body=body,
            created_at=datetime.now(UTC),
        )
        print(f"  classify  {label:<12s} ", end="", flush=True)
        t0 = time.monotonic()
        judgment = await classifier.classify(message)
        elapsed = time.monotonic() - t0
        if judgment.degraded:
            print(f"FAIL  {elapsed:.1f}s  {judgment.failure_reason}")
            ok = False
            continue
        expected = label == "order"
        verdict = "OK" if judgment.is_order == expected else "MISMATCH"
        print(f"{verdict}  {elapsed:.1f}s  is_order={judgment.is_order} products={judgment.products}")
        ok = ok and verdict == "OK"
    return ok


async def check_fetch(source: OpenPhoneSource) -> bool:
    print("  fetch     last hour    ", end="", flush=True)
    t0 = time.monotonic()
    try:
        messages = await source.fetch_since(datetime.now(UTC) - timedelta(hours=1), 10)
    except Exception as exc:
        print(f"FAIL  {time.monotonic() - t0:.1f}s  {exc}")
        return False
    inbound = sum(1 for message in messages if message.is_inbound)
    print(f"OK  {time.monotonic() - t0:.1f}s  messages={len(messages)} inbound={inbound}")
    return True


async def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--skip-fetch", action="store_true", help="do not call OpenPhone")
    args = parser.parse_args()

    settings = Settings()
    results: list[bool] = []

    classifier = Classifier(settings=settings)
    if classifier.router.configured:
        print(f"Classifier ({settings.classification_model})")
        results.append(await check_classifier(classifier))
    else:
        print("Classifier: skipped (no API key)")

    source = OpenPhoneSource(settings=settings)
    if args.skip_fetch or not source.configured:
        print("OpenPhone: skipped")
    else:
        print("OpenPhone")
        results.append(await check_fetch(source))

    if not results:
        print("Nothing configured to test.")
        return 1
    return 0 if all(results) else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
