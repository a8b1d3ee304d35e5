"""
Backend service: device access, poll driver and command-line entry point.
"""
