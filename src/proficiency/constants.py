"""
Seeded constants for the proficiency engine.

These values were fitted offline on a population keystroke dataset and are
treated as configuration: they are supplied to the engine through
EngineConfig and never re-derived at runtime.
"""

from __future__ import annotations

# =============================================================================
# Priors
# =============================================================================

# Beta prior for per-key accuracy (population mean ~0.949)
GLOBAL_PRIORS = {
    "alpha": 50.38,
    "beta": 2.72,
}

# Gamma prior for per-key speed (rate in keystrokes per second)
SPEED_PRIOR = {
    "shape": 8.45,
    "rate": 0.149,
}

# Speed reported before any latency has been observed (ms)
DEFAULT_SPEED_MS = 200.0
DEFAULT_SPEED_CI = (150.0, 250.0)

# Latencies are clamped into this range before they reach the Gamma update
MIN_LATENCY_MS = 1.0
MAX_LATENCY_MS = 60_000.0

# =============================================================================
# Hidden-state model
# =============================================================================

STATES = ("learning", "proficient", "mastered", "regressing")

# Seeded transition table; rows are normalized when a key state is created
TRANSITION_TABLE = {
    "learning": {"learning": 0.150, "proficient": 0.472, "mastered": 0.102, "regressing": 0.020},
    "proficient": {"learning": 0.002, "proficient": 0.250, "mastered": 0.153, "regressing": 0.010},
    "mastered": {"learning": 0.010, "proficient": 0.050, "mastered": 0.900, "regressing": 0.005},
    "regressing": {"learning": 0.300, "proficient": 0.100, "mastered": 0.020, "regressing": 0.500},
}

# P(correct | state)
OBSERVATION_RELIABILITY = {
    "learning": 0.60,
    "proficient": 0.85,
    "mastered": 0.95,
    "regressing": 0.50,
}

# Accuracy the ensemble expects from a key in each state
STATE_ACCURACY = {
    "learning": 0.65,
    "proficient": 0.85,
    "mastered": 0.95,
    "regressing": 0.55,
}

TRANSITION_NUDGE = 1.1
NUDGE_MIN_OBSERVATIONS = 10
NUDGE_MASTERY_RATE = 0.9
NUDGE_REGRESSION_RATE = 0.7

# =============================================================================
# Learning curve
# =============================================================================

ROLLING_WINDOW = 20
PLATEAU_WINDOW = 10
PLATEAU_THRESHOLD = 0.02
MASTERY_TARGET = 0.95

# =============================================================================
# Ensemble
# =============================================================================

ENSEMBLE_WEIGHTS = {
    "bayesian": 0.35,
    "hidden_state": 0.30,
    "temporal": 0.20,
    "meta": 0.15,
}

NEUTRAL_PREDICTION = 0.5
MIN_TEMPORAL_SAMPLES = 5
MIN_META_OBSERVATIONS = 10

# =============================================================================
# Scheduling
# =============================================================================

POSITION_BUCKETS = 5
FATIGUE_WINDOW_SECONDS = 3600
FATIGUE_SATURATION = 100
MAXIMUM_INTERVAL_DAYS = 365

# Same-finger groups on a QWERTY layout, used for transfer-learning hints
FINGER_MAP = {
    "q": "left-pinky", "a": "left-pinky", "z": "left-pinky",
    "w": "left-ring", "s": "left-ring", "x": "left-ring",
    "e": "left-middle", "d": "left-middle", "c": "left-middle",
    "r": "left-index", "f": "left-index", "v": "left-index",
    "t": "left-index", "g": "left-index", "b": "left-index",
    "y": "right-index", "h": "right-index", "n": "right-index",
    "u": "right-index", "j": "right-index", "m": "right-index",
    "i": "right-middle", "k": "right-middle",
    "o": "right-ring", "l": "right-ring",
    "p": "right-pinky", ";": "right-pinky",
}
SAME_FINGER_TRANSFER = 0.6
