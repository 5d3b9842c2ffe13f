import math


def check_amount(v: float | None) -> float:
    if v is None:
        return 0.0
    v = float(v)
    if v != v:
        raise ValueError("amount must be a number")
    if not math.isfinite(v):
        raise ValueError("amount must be finite")
    if v < 0:
        raise ValueError("amount must be non-negative")
    return v


def trim_or_none(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    return v or None
