import hashlib
import json
from typing import Any, Dict, Optional


def _stable_value(value: Any) -> str:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return str(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def make_idempotency_key(purpose: str, *, subject: Optional[str] = None, extra: Optional[Dict[str, Any]] = None) -> str:
    """Deterministic Stripe idempotency key for one logical mutation.

    The same purpose, subject and extra values always give the same key, so a
    client retry is de-duplicated by Stripe instead of creating a second
    customer or session. Format: ``<prefix>-<sha256 hex, 32 chars>``.
    """
    parts = [purpose]
    if subject is not None:
        parts.append(f"s:{subject}")
    if extra:
        for k in sorted(extra.keys()):
            parts.append(f"x:{k}:{_stable_value(extra[k])}")

    digest = hashlib.sha256("|".join(parts).encode()).hexdigest()[:32]
    prefix = purpose[:8].replace("_", "-").rstrip("-")
    return f"{prefix}-{digest}"
