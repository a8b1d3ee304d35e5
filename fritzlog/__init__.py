"""
fritzlog: keep a deduplicated, continuously growing history of a FRITZ!Box log feed.
"""

__version__ = "0.1.0"
