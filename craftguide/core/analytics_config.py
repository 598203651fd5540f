# --------------------------------------------------
# DROP-OFF
# --------------------------------------------------

# Step drop-off above this is flagged as critical
HIGH_DROP_OFF_PERCENT = 10.0

# Step drop-off above this (and not above HIGH) is a warning
MODERATE_DROP_OFF_PERCENT = 5.0

# --------------------------------------------------
# COMPLETION
# --------------------------------------------------

LOW_COMPLETION_RATE_PERCENT = 70.0
EXCELLENT_COMPLETION_RATE_PERCENT = 85.0

# --------------------------------------------------
# FIRST PROJECT
# --------------------------------------------------

SLOW_FIRST_PROJECT_HOURS = 4.0

# --------------------------------------------------
# SKIPS
# --------------------------------------------------

HIGH_SKIP_RATE_PERCENT = 20.0

# --------------------------------------------------
# INSIGHT GATING
# --------------------------------------------------

# No insight fires until at least this many users have events
MIN_USERS_FOR_INSIGHTS = 1

# --------------------------------------------------
# ROLLUPS
# --------------------------------------------------

# Decimal places kept on percentages and durations
ROUND_DIGITS = 1

COHORT_PERIOD = "week"

# Distinct error messages reported per step, most frequent first
COMMON_ERRORS_LIMIT = 3

# --------------------------------------------------
# AT-RISK USERS
# --------------------------------------------------

# Unfinished project with no activity for this long
AT_RISK_STUCK_HOURS = 48.0

# No project started and no activity for this long
AT_RISK_IDLE_HOURS = 24.0

# --------------------------------------------------
# SNAPSHOT CACHE
# --------------------------------------------------

# Last-good rollups kept for stale serving, least recently used dropped first
SNAPSHOT_CACHE_SIZE = 32
