"""
Die Hard roll adjustment engine.

Lets a game moderator covertly override the outcome of dice rolls
(fudge) and automatically compensate players on cold streaks (karma).
"""

__version__ = "0.1.0"
