"""
Settlement Engine — Entry point.
Wires the PayCrest client, Supabase record writer and pollers, then runs one
command and prints the result as JSON.

Usage:
    python3 main.py --smoke                  # Connectivity check only
    python3 main.py status ORDER_ID          # One status call, no polling
    python3 main.py poll ORDER_ID            # Poll until terminal/exhausted/timeout
    python3 main.py verify ORDER_ID          # Three-layer settlement check
    python3 main.py monitor ID [ID ...]      # Guarded polls, run concurrently
"""

import argparse
import asyncio
import json
import os
import sys

from settlement.config import (
    BASE_RPC_URL,
    MONITOR_TIMEOUT_MS,
    RECORD_QUEUE_MAXSIZE,
    paycrest_credentials,
    supabase_credentials,
    print_config_summary,
)
from settlement.chain.receipts import ReceiptChecker
from settlement.db.client import init_supabase, health_check, Database
from settlement.db.recorder import RecordWriter
from settlement.orders.guard import TimeoutGuard
from settlement.orders.poller import PollingOrchestrator
from settlement.orders.verifier import SettlementVerifier
from settlement.paycrest.client import PaycrestClient


def _print_json(payload):
    print(json.dumps(payload, indent=2, default=str))


async def smoke_test():
    """Smoke test: reach PayCrest, Supabase and Base RPC, print status, exit."""
    print("=" * 50)
    print("  Settlement Engine — Smoke Test")
    print("=" * 50)
    print()
    print_config_summary()
    print()

    api_key, base_url = paycrest_credentials()
    client = PaycrestClient(api_key, base_url)
    try:
        print("[PAYCREST] Connecting...")
        ok = await client.ping()
        print(f"[PAYCREST] {'✅ reachable' if ok else '❌ unreachable'} ({base_url})")
        if not ok:
            sys.exit(1)
    finally:
        await client.close()

    print()
    if os.getenv("SUPABASE_URL"):
        print("[DB] Connecting to Supabase...")
        url, key = supabase_credentials()
        ok = await health_check(init_supabase(url, key))
        print(f"[DB] {'✅ supabase ok' if ok else '❌ health check failed'}")
    else:
        print("[DB] ⚠️  SUPABASE_URL not set — recording disabled")

    print()
    print("[CHAIN] Connecting to Base...")
    chain_ok = await ReceiptChecker(BASE_RPC_URL).check_chain()
    print(f"[CHAIN] {'✅ Base reachable' if chain_ok else '⚠️  on-chain proof unavailable'}")

    print()
    print("=" * 50)
    print("  ✅ SMOKE TEST PASSED")
    print("=" * 50)


def _polling_overrides(args) -> dict:
    return {
        "max_attempts": getattr(args, "max_attempts", None),
        "base_delay_ms": getattr(args, "base_delay_ms", None),
        "max_delay_ms": getattr(args, "max_delay_ms", None),
        "timeout_ms": getattr(args, "timeout_ms", None),
        "exponential_factor": getattr(args, "exponential_factor", None),
    }


async def run_command(args):
    """Build components for one command, run it, flush records, shut down."""
    api_key, base_url = paycrest_credentials()
    client = PaycrestClient(api_key, base_url)

    writer = None
    writer_task = None
    if args.command in ("poll", "monitor") and not args.no_record:
        if os.getenv("SUPABASE_URL"):
            url, key = supabase_credentials()
            db = Database(init_supabase(url, key))
            writer = RecordWriter.for_database(db, maxsize=RECORD_QUEUE_MAXSIZE)
            writer_task = asyncio.create_task(writer.run(), name="record_writer")
            print("[INIT] ✅ Supabase recording enabled")
        else:
            print("[INIT] ⚠️  SUPABASE_URL not set — attempts and settlements will not be recorded")

    orchestrator = PollingOrchestrator(client, sink=writer)

    try:
        if args.command == "status":
            result = await orchestrator.check_status(args.order_id)
            _print_json(result.to_dict())

        elif args.command == "poll":
            result = await orchestrator.poll_order_status(args.order_id, _polling_overrides(args))
            _print_json(result.to_dict())

        elif args.command == "verify":
            verification = await SettlementVerifier(client).verify_settlement(args.order_id)
            payload = verification.to_dict()
            if args.onchain and verification.verified:
                payload["onchain"] = await ReceiptChecker(BASE_RPC_URL).confirm(verification.order.tx_hash)
            _print_json(payload)

        elif args.command == "monitor":
            guard = TimeoutGuard(orchestrator, deadline_ms=args.deadline_ms)
            results = await guard.monitor_many(args.order_ids, _polling_overrides(args))
            _print_json({oid: r.to_dict() for oid, r in results.items()})

    finally:
        if writer_task:
            try:
                await asyncio.wait_for(writer.flush(), timeout=30.0)
            except asyncio.TimeoutError:
                print(f"[ENGINE] ⚠️  {writer.pending} record(s) not written before shutdown")
            writer_task.cancel()
            await asyncio.gather(writer_task, return_exceptions=True)
            print(f"[ENGINE] Recorder: {writer.metrics()}")
            print(f"[ENGINE] DB: {writer.attempts.db.metrics()}")
        await client.close()


def _add_polling_args(p):
    p.add_argument("--max-attempts", type=int, help="Hard cap on status calls")
    p.add_argument("--base-delay-ms", type=float, help="First inter-attempt delay")
    p.add_argument("--max-delay-ms", type=float, help="Backoff ceiling")
    p.add_argument("--timeout-ms", type=float, help="Poller wall-clock cap")
    p.add_argument("--exponential-factor", type=float, help="Backoff growth rate")
    p.add_argument("--no-record", action="store_true", help="Do not write to Supabase")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PayCrest Settlement Engine")
    parser.add_argument("--smoke", action="store_true", help="Smoke test only (connect + exit)")
    sub = parser.add_subparsers(dest="command")

    p_status = sub.add_parser("status", help="One status call, no polling")
    p_status.add_argument("order_id")

    p_poll = sub.add_parser("poll", help="Poll an order until it settles or fails")
    p_poll.add_argument("order_id")
    _add_polling_args(p_poll)

    p_verify = sub.add_parser("verify", help="Three-layer settlement check")
    p_verify.add_argument("order_id")
    p_verify.add_argument("--onchain", action="store_true", help="Also look up the tx receipt on Base")

    p_monitor = sub.add_parser("monitor", help="Guarded polls for one or more orders")
    p_monitor.add_argument("order_ids", nargs="+")
    p_monitor.add_argument("--deadline-ms", type=float, default=MONITOR_TIMEOUT_MS,
                           help="Outer deadline per order")
    _add_polling_args(p_monitor)
    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    try:
        if args.smoke:
            asyncio.run(smoke_test())
        elif args.command:
            asyncio.run(run_command(args))
        else:
            parser.print_help()
    except KeyboardInterrupt:
        print("\nStopped.")
    except ValueError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
