"""
castfeed: client core for a short-form podcast feed with AI-assisted
script and audio generation.
"""

__version__ = "0.3.0"
