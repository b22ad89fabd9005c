import hashlib
import json
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import List, Dict, Any, Optional, Union

GENESIS = "GENESIS"

Number = Union[int, float, Decimal]

def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def compute_hash(prev_hash: str, payload: dict, timestamp: str) -> str:
    block = json.dumps({
        "prev_hash": prev_hash,
        "payload": payload,
        "timestamp": timestamp
    }, sort_keys=True)
    return hashlib.sha256(block.encode("utf-8")).hexdigest()

def verify_chain(events: List[Dict[str, Any]]) -> bool:
    prev = GENESIS
    for ev in events:
        expected = compute_hash(prev, ev["payload"], ev["timestamp"])
        if ev["hash"] != expected or ev["prev_hash"] != prev:
            return False
        prev = ev["hash"]
    return True

def _quantum(places: int) -> Decimal:
    return Decimal(1).scaleb(-places)

def to_decimal(value: Number) -> Decimal:
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return value if isinstance(value, Decimal) else Decimal(str(value))

def round_half_up(value: Number, places: int = 2) -> float:
    return float(to_decimal(value).quantize(_quantum(places), rounding=ROUND_HALF_UP))

def truncate(value: Number, places: int = 2) -> Decimal:
    return to_decimal(value).quantize(_quantum(places), rounding=ROUND_DOWN)

def percentage(count: int, total: int, places: int = 2) -> float:
    if total <= 0:
        return 0.0
    return round_half_up(Decimal(count) * 100 / Decimal(total), places)

def to_centi(celsius: Number) -> int:
    """12.345 -> 1235 (fixed point, two decimals)."""
    return int((to_decimal(celsius) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))

def from_centi(centi: int) -> str:
    return f"{Decimal(centi) / 100:.2f}"

def to_iso(moment: Optional[datetime]) -> Optional[str]:
    """ISO-8601 text for a parsed timestamp; naive values are taken as UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()

def day_key(timestamp: str) -> str:
    """UTC calendar day of an ISO-8601 timestamp, independent of locale."""
    moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.date().isoformat()
