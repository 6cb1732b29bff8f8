from __future__ import annotations

# Alert rule form limits (unit: percent unless noted)
THRESHOLD_MIN = 0.1
THRESHOLD_MAX = 50.0
DEFAULT_THRESHOLD_PERCENT = 5.0
NAME_MIN_LENGTH = 3

RULES_CACHE_KEY = "alert_rules"
TEMP_ID_PREFIX = "temp-"

# Wire endpoints (relative to the API base URL)
RULES_PATH = "/alerts/rules/"
HISTORY_PATH = "/alerts/history/"
STATS_PATH = "/alerts/stat/"

def rule_path(rule_id: str) -> str:
    return f"/alerts/rules/{rule_id}/"

def history_resolve_path(history_id: str) -> str:
    return f"/alerts/history/{history_id}/resolve/"
