import logging
import re

logger = logging.getLogger(__name__)

_CPU_PATTERN = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)(m?)$")
_BYTES_PATTERN = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)([A-Za-z]*)$")


def _to_gib(amount: float, unit: str) -> float:
    if unit == "Ki":
        return amount / 1_048_576
    if unit == "Mi":
        return amount / 1024
    if unit == "Gi":
        return amount
    if unit == "Ti":
        return amount * 1024
    return amount / 2**30


def parse_cpu(value) -> float:
    """Cores from a CPU quantity: "500m" -> 0.5, "2" -> 2.0. Unparseable -> 0.0."""
    text = "" if value is None else str(value).strip()
    if not text:
        return 0.0
    match = _CPU_PATTERN.match(text)
    if not match:
        logger.warning("Unparseable CPU quantity %r counted as zero", value)
        return 0.0
    amount = float(match.group(1))
    return amount / 1000 if match.group(2) else amount


def parse_gib(value) -> float:
    """GiB from a memory or storage quantity using binary suffixes; bare numbers are bytes."""
    text = "" if value is None else str(value).strip()
    if not text:
        return 0.0
    match = _BYTES_PATTERN.match(text)
    if not match or match.group(2) not in ("", "Ki", "Mi", "Gi", "Ti"):
        logger.warning("Unparseable byte quantity %r counted as zero", value)
        return 0.0
    return _to_gib(float(match.group(1)), match.group(2))
