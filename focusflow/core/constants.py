"""
Application constants for FocusFlow.

Centralizes key lifetimes, limits and scoring values used by the
ephemeral state layer and the endpoints that call into it.
"""

# Session timers
SESSION_STATE_BUFFER_SECONDS = 300  # Shadow state outlives the timer by 5 minutes
SESSION_STATE_UPDATE_TTL_SECONDS = 1800  # TTL refreshed on partial state updates

# Room presence
ROOM_PRESENCE_TTL_SECONDS = 3600  # Whole-room hash expiry, refreshed on join

# Leaderboards
DAILY_LEADERBOARD_TTL_SECONDS = 7 * 24 * 60 * 60
WEEKLY_LEADERBOARD_TTL_SECONDS = 30 * 24 * 60 * 60
DEFAULT_LEADERBOARD_LIMIT = 10
MAX_LEADERBOARD_LIMIT = 100
POINTS_PER_FOCUS_MINUTE = 2

# Streaks
STREAK_TTL_SECONDS = 365 * 24 * 60 * 60
STREAK_LOOKBACK_DAYS = 365

# Distraction (cancellation) limiting
DISTRACTION_LIMIT = 5  # Max cancellations per window
DISTRACTION_WINDOW_SECONDS = 3600

# User status
USER_STATUS_TTL_SECONDS = 300

# Oracle daily consultation marker
ORACLE_DAILY_TTL_SECONDS = 86400

# Per-endpoint rate limits: endpoint -> (limit, window_seconds)
RATE_LIMITS = {
    "session_start": (10, 300),
    "ai_chat": (30, 300),
    "oracle_consult": (1, 86400),
}
