"""
Settlement engine configuration — loads env vars, validates, fails fast.

Hardened with:
  - URL validation for PayCrest, Supabase and Base RPC endpoints
  - Range validation for polling parameters (clamped with a warning)
  - Credentials resolved on demand so offline tooling can import this module
"""

import os
import sys
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

# Load .env from project root
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)

_WARNINGS: list = []  # collected during load, printed at summary


def _require(name: str) -> str:
    """Get a required env var or exit with a clear error."""
    val = os.getenv(name)
    if not val:
        print(f"FATAL: missing required env var: {name}", file=sys.stderr)
        print(f"  Copy .env.example to .env and fill in the values.", file=sys.stderr)
        sys.exit(1)
    return val.strip()


def _optional(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _validate_url(url: str, label: str) -> str:
    """Validate a URL starts with http:// or https://."""
    if not url.startswith(("http://", "https://")):
        print(f"FATAL: {label} must start with http:// or https://: {url}", file=sys.stderr)
        sys.exit(1)
    return url


def _int_range(name: str, raw: str, low: int, high: int) -> int:
    """Parse an int and clamp to [low, high] with a warning."""
    try:
        val = int(raw)
    except ValueError:
        print(f"FATAL: {name} must be an integer, got: {raw}", file=sys.stderr)
        sys.exit(1)
    if val < low or val > high:
        clamped = max(low, min(val, high))
        _WARNINGS.append(f"{name}={val} out of range [{low},{high}], clamped to {clamped}")
        return clamped
    return val


def _float_range(name: str, raw: str, low: float, high: float) -> float:
    """Parse a float and clamp to [low, high] with a warning."""
    try:
        val = float(raw)
    except ValueError:
        print(f"FATAL: {name} must be a number, got: {raw}", file=sys.stderr)
        sys.exit(1)
    if val < low or val > high:
        clamped = max(low, min(val, high))
        _WARNINGS.append(f"{name}={val} out of range [{low},{high}], clamped to {clamped}")
        return clamped
    return val


# === PayCrest (settlement network) ===
PAYCREST_BASE_URL: str = _validate_url(
    _optional("PAYCREST_BASE_URL", "https://api.paycrest.io/v1"), "PAYCREST_BASE_URL"
).rstrip("/")
STATUS_HTTP_TIMEOUT_SEC: int = _int_range(
    "STATUS_HTTP_TIMEOUT_SEC", _optional("STATUS_HTTP_TIMEOUT_SEC", "15"), 1, 120
)

# === Base Chain (on-chain proof lookups only) ===
BASE_RPC_URL: str = _validate_url(_optional("BASE_RPC_URL", "https://mainnet.base.org"), "BASE_RPC_URL")
BASE_CHAIN_ID: int = 8453

# === Polling defaults ===
POLL_MAX_ATTEMPTS: int = _int_range("POLL_MAX_ATTEMPTS", _optional("POLL_MAX_ATTEMPTS", "20"), 1, 500)
POLL_BASE_DELAY_MS: int = _int_range("POLL_BASE_DELAY_MS", _optional("POLL_BASE_DELAY_MS", "3000"), 0, 600_000)
POLL_MAX_DELAY_MS: int = _int_range("POLL_MAX_DELAY_MS", _optional("POLL_MAX_DELAY_MS", "30000"), 0, 3_600_000)
POLL_TIMEOUT_MS: int = _int_range("POLL_TIMEOUT_MS", _optional("POLL_TIMEOUT_MS", "600000"), 1000, 86_400_000)
POLL_EXPONENTIAL_FACTOR: float = _float_range(
    "POLL_EXPONENTIAL_FACTOR", _optional("POLL_EXPONENTIAL_FACTOR", "1.4"), 1.0, 10.0
)
if POLL_MAX_DELAY_MS < POLL_BASE_DELAY_MS:
    _WARNINGS.append(
        f"POLL_MAX_DELAY_MS={POLL_MAX_DELAY_MS} below POLL_BASE_DELAY_MS={POLL_BASE_DELAY_MS} "
        f"— every delay will be capped"
    )

# === Outer monitoring deadline ===
MONITOR_TIMEOUT_MS: int = _int_range(
    "MONITOR_TIMEOUT_MS", _optional("MONITOR_TIMEOUT_MS", "600000"), 1000, 86_400_000
)
if MONITOR_TIMEOUT_MS > POLL_TIMEOUT_MS:
    _WARNINGS.append(
        f"MONITOR_TIMEOUT_MS={MONITOR_TIMEOUT_MS} exceeds POLL_TIMEOUT_MS={POLL_TIMEOUT_MS} "
        f"— the poller's own timeout will fire first"
    )

# === Record writer ===
RECORD_QUEUE_MAXSIZE: int = _int_range(
    "RECORD_QUEUE_MAXSIZE", _optional("RECORD_QUEUE_MAXSIZE", "1000"), 10, 100_000
)


def paycrest_credentials() -> Tuple[str, str]:
    """Return (api_key, base_url). Exits if the API key is missing."""
    return _require("PAYCREST_API_KEY"), PAYCREST_BASE_URL


def supabase_credentials() -> Tuple[str, str]:
    """Return (url, key). Exits if either is missing."""
    url = _validate_url(_require("SUPABASE_URL"), "SUPABASE_URL")
    return url, _require("SUPABASE_KEY")


def print_config_summary() -> None:
    """Print a non-sensitive config summary for startup verification."""
    print("--- Settlement Engine Config ---")
    print(f"  PayCrest:       {PAYCREST_BASE_URL[:40]}")
    _key = os.getenv("PAYCREST_API_KEY", "")
    print(f"  API key:        {_key[:4] + '...' + _key[-2:] if len(_key) > 8 else '(not set)'}")
    _sb = os.getenv("SUPABASE_URL", "")
    print(f"  Supabase:       {_sb[:40] + '...' if _sb else '(not set — recording disabled)'}")
    print(f"  Base RPC:       {BASE_RPC_URL[:40]}")
    print(f"  Max attempts:   {POLL_MAX_ATTEMPTS}")
    print(f"  Base delay:     {POLL_BASE_DELAY_MS}ms (x{POLL_EXPONENTIAL_FACTOR})")
    print(f"  Max delay:      {POLL_MAX_DELAY_MS}ms")
    print(f"  Poll timeout:   {POLL_TIMEOUT_MS}ms")
    print(f"  Monitor limit:  {MONITOR_TIMEOUT_MS}ms")
    print(f"  HTTP timeout:   {STATUS_HTTP_TIMEOUT_SEC}s")
    print(f"  Record queue:   {RECORD_QUEUE_MAXSIZE}")
    if _WARNINGS:
        print(f"  ⚠️  {len(_WARNINGS)} config warning(s):")
        for w in _WARNINGS:
            print(f"    - {w}")
    print("-" * 32)
