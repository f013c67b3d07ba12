"""
SM-2 scheduling constants.

Static defaults for the SuperMemo 2 derived scheduler. No runtime
configuration or path defaults here - pure constants only.
"""
from typing import Dict, Tuple

# Ease factor given to a card that has never been reviewed.
DEFAULT_EASE_FACTOR: float = 2.5

# SM-2 floor for the ease factor. Anything lower is treated as corrupted state.
MINIMUM_EASE_FACTOR: float = 1.3

# Ease factor lost on a failed recall.
AGAIN_EASE_PENALTY: float = 0.20

# Ease factor delta per successful outcome, keyed by outcome name.
EASE_ADJUSTMENTS: Dict[str, float] = {
    "Hard": -0.15,
    "Good": 0.0,
    "Easy": 0.15,
}

# Fixed intervals (days) for the first and second successful repetitions.
GRADUATING_INTERVALS: Tuple[int, ...] = (1, 6)

# Interval (days) applied after a failed recall.
RELEARN_INTERVAL_DAYS: int = 1

# Upper bound on any computed interval.
DEFAULT_MAX_INTERVAL_DAYS: int = 365

# Default number of cards in one review session.
DEFAULT_SESSION_LIMIT: int = 20

# Decimal places kept on the ease factor to stop floating point drift.
EASE_FACTOR_PRECISION: int = 4

# Partition used when no user is given.
DEFAULT_USER_ID: str = "default"
