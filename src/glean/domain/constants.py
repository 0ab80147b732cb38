"""Centralized constants for glean.

Policy defaults live here so every layer imports from a single source of truth.
All of them can be overridden through AppConfig.
"""

# ---------- Languages ----------
ALL_LANGUAGES = "all"

# ---------- Queue Builder ----------
DEFAULT_NEW_CARD_CAP = 20

# ---------- Review Session ----------
DEFAULT_REQUEUE_OFFSET = 4

# ---------- FSRS ----------
DEFAULT_DESIRED_RETENTION = 0.9
DEFAULT_MAXIMUM_INTERVAL = 36500  # days
DEFAULT_FUZZ_FACTOR = 0.05
FUZZ_MIN_INTERVAL_DAYS = 3.0

# ---------- Mastery ----------
MASTERY_MIN_INTERVAL_DAYS = 21
MASTERY_MAX_LAPSES = 2

# ---------- Statistics ----------
HISTORY_LIMIT = 100
CHART_DAYS = 30
HEATMAP_DAYS = 365

# ---------- Transfer ----------
EXPORT_FORMAT_VERSION = 1
