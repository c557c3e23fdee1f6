"""
Gamehall terminal - board-game venue table sessions with cross-terminal sync
"""

__version__ = "1.0.0"
