"""
Smolgen - prompt to pixel art, lyrics and two songs
"""

__version__ = "0.1.0"
