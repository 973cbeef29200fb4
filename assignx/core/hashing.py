from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Dict


def canonical_dumps(obj: Dict[str, Any]) -> str:
    # Deterministic JSON string: sorted keys, no whitespace, str() for UUID/datetime
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def payload_hash(payload: Dict[str, Any]) -> str:
    return sha256_hex(canonical_dumps(payload))


def hash_chain(prev_hash: str, payload: Dict[str, Any]) -> str:
    """entry_hash = SHA256(prev_hash + canonical(payload))"""
    return sha256_hex(prev_hash + canonical_dumps(payload))


def hmac_sha256_hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
