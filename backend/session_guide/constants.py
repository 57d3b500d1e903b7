"""Shared timing constants and store versions for the session guide engine."""

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

# Booster window, in minutes after ingestion.
BOOSTER_FLOOR_MINUTES = 90
BOOSTER_AFTER_ARRIVAL_MINUTES = 30
BOOSTER_SILENT_EXPIRY_MINUTES = 150
BOOSTER_HARD_STOP_MINUTES = 180
BOOSTER_SNOOZE_MINUTES = 10
BOOSTER_MODULE_ID = "booster-consideration"
BOOSTER_MODAL_REASON = "booster-modal"

# Follow-up unlock offsets after session close.
FOLLOW_UP_CHECK_IN_OFFSET_MS = DAY_MS
FOLLOW_UP_REVISIT_OFFSET_MS = DAY_MS
FOLLOW_UP_INTEGRATION_OFFSET_MS = 2 * DAY_MS

# Phase allocations, in minutes.
DEFAULT_TARGET_DURATION = 240
MIN_TARGET_DURATION = 120
MAX_TARGET_DURATION = 480
COME_UP_ALLOCATED = 45
COME_UP_MIN = 20
COME_UP_MAX = 60
PEAK_ALLOCATED = 90

SESSION_DURATION_TARGETS = {
    "3-4h": 210,
    "4-6h": 300,
    "6+h": 420,
}

# Persisted blob schema versions.
SESSION_STORE_VERSION = 6
SESSION_STORE_MIN_VERSION = 2
JOURNAL_STORE_VERSION = 2
