import math
import re
from datetime import datetime, timezone
from dateutil import parser as date_parser

_SNAKE_RE = re.compile(r"[-_]([a-z0-9])")
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def parse_iso(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return date_parser.isoparse(str(value))
    except (ValueError, OverflowError):
        return None

def snake_to_camel(name: str) -> str:
    return _SNAKE_RE.sub(lambda m: m.group(1).upper(), name)

def camel_to_snake(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()

def convert_keys(obj, convert=snake_to_camel):
    """Recursively rename dict keys; lists are walked, scalars returned as-is."""
    if isinstance(obj, list):
        return [convert_keys(v, convert) for v in obj]
    if isinstance(obj, dict):
        return {convert(k) if isinstance(k, str) else k: convert_keys(v, convert) for k, v in obj.items()}
    return obj

def pick(raw: dict, camel_key: str, default=None):
    """Read a field that may arrive camelCase or snake_case, camelCase wins."""
    if not isinstance(raw, dict):
        return default
    value = raw.get(camel_key)
    if value is not None:
        return value
    value = raw.get(camel_to_snake(camel_key))
    return default if value is None else value

def to_float(value, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(out) or math.isinf(out):
        return default
    return out
