"""
Fairway golf course content acquisition and extraction.
"""

__version__ = "0.1.0"
