from __future__ import annotations

# Units: percentage points unless noted

# Rollup row some backends append to a bucket; it double counts the rest.
OVERALL_ROW_NAME = "Overall Allocation"

# Raw values at or below this are read as fractions of 1.
FRACTION_CUTOFF = 1.0

ALLOCATION_MIN = 0.0
ALLOCATION_MAX = 100.0
ALLOCATION_TOTAL = 100.0
ALLOCATION_TOLERANCE = 0.01      # accepted |sum - 100| at submission
BALANCE_DECIMALS = 2
BALANCE_MAX_PASSES = 64          # clamping passes before giving up on a residue

# Severity tiers as fractions of the configured threshold
SAFE_FRACTION = 0.5
WARNING_FRACTION = 0.75
ELEVATED_FRACTION = 1.0

# Relative drift reported for a category with no target but a nonzero holding
UNTARGETED_RELATIVE_DRIFT = 100.0

DEFAULT_THRESHOLD_PERCENT = 5.0
DRIFT_CACHE_KEY = "portfolio_drift"

SETUP_REQUIRED_MESSAGE = (
    "No target allocations are defined for this portfolio. "
    "Define target allocations to analyze portfolio drift."
)
MISSING_TARGETS_MESSAGE = (
    "To analyze portfolio drift, you need to define target allocations for each sector. "
    "Set your target allocation percentages to continue."
)
