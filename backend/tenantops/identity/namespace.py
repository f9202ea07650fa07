import re
import threading
import time

from tenantops.provisioning.errors import TenantValidationError

MAX_NAMESPACE_LENGTH = 63
NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]")
_HYPHEN_RUNS = re.compile(r"-{2,}")

_suffix_lock = threading.Lock()
_last_suffix = 0


def is_valid_namespace(name: str) -> bool:
    return bool(name) and len(name) <= MAX_NAMESPACE_LENGTH and bool(NAMESPACE_PATTERN.match(name))


def next_suffix() -> str:
    """Millisecond timestamp, bumped when needed so consecutive calls never repeat."""
    global _last_suffix
    with _suffix_lock:
        now_ms = int(time.time() * 1000)
        _last_suffix = max(now_ms, _last_suffix + 1)
        return str(_last_suffix)


def sanitize_display_name(display_name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("-", (display_name or "").lower())
    return _HYPHEN_RUNS.sub("-", cleaned).strip("-")


def derive_namespace(display_name: str, *, suffix: str, prefix: str = "tenant") -> str:
    """
    Build `<prefix>-<sanitized name>-<suffix>` within the cluster's name limits.

    The result is only a candidate: two tenants with the same sanitized name
    and suffix still collide, and the tenant store's unique index is what
    rejects the second one.
    """
    if not (display_name or "").strip():
        raise TenantValidationError("display name is required to derive a namespace")

    prefix = sanitize_display_name(prefix)
    tail = sanitize_display_name(suffix)
    if not tail:
        raise TenantValidationError("namespace suffix must contain letters or digits")

    fixed = [part for part in (prefix, tail) if part]
    room = MAX_NAMESPACE_LENGTH - sum(len(p) for p in fixed) - len(fixed)
    body = sanitize_display_name(display_name)[: max(room, 0)].rstrip("-")

    parts = [prefix, body, tail] if prefix else [body, tail]
    candidate = "-".join(part for part in parts if part)

    if not is_valid_namespace(candidate):
        raise TenantValidationError(f"derived namespace is not a valid cluster name: {candidate!r}")
    return candidate
