"""Sampling and alert policy constants."""

from __future__ import annotations

# Adaptive sampling (client side)
FAST_SPEED_MPS = 5.0
SLOW_SPEED_MPS = 1.0
FAST_INTERVAL_SECONDS = 30
SLOW_INTERVAL_SECONDS = 60
STATIONARY_PAUSE_SECONDS = 5 * 60

# Minimum movement between two emitted samples, filters GPS jitter
MIN_EMIT_DISTANCE_M = 50.0

# Upper bound on the wait between ticks while pushes keep failing
MAX_BACKOFF_SECONDS = 300

# SOS
DEFAULT_SOS_MESSAGE = "I need help! This is an emergency!"

# Meeting history listing
MEETING_HISTORY_LIMIT = 50
