"""
Constants used across the scoring and leaderboard system.
"""

import os

# Points calculation
BASE_POINTS = 10
MAX_SIZE_BONUS = 50
WEIGHT_BONUS_PER_LB = 5
LENGTH_BONUS_PER_INCH = 2
PRIME_TIME_BONUS = 5
PRIME_TIME_HOURS = ((5, 8), (18, 21))  # Inclusive local-hour ranges
SCORING_TIMEZONE = os.getenv("SCORING_TIMEZONE", "UTC")

# Physical bounds for catch measurements (exclusive)
MAX_WEIGHT_LBS = 1000
MAX_LENGTH_IN = 200

# Competitions
MIN_MAX_PARTICIPANTS = 2
COMPETITION_LEADERBOARD_LIMIT = 50

# Global leaderboard
GLOBAL_LEADERBOARD_STATE = ""  # Partition key for the all-states leaderboard
LEADERBOARD_LIMIT = 100

# Score recompute queue
SCORE_JOB_MAX_ATTEMPTS = int(os.getenv("SCORE_JOB_MAX_ATTEMPTS", "5"))
SCORE_JOB_BACKOFF_SECONDS = 30  # Doubled on every failed attempt

# External calls
WEATHER_TIMEOUT_SECONDS = 5.0
SCRAPE_TIMEOUT_SECONDS = 15.0
PUSH_TIMEOUT_SECONDS = 10.0
PUSH_CHUNK_SIZE = 100
