"""WakaWars Sync - polls WakaTime stats for the leaderboard."""

__version__ = "1.0.0"
