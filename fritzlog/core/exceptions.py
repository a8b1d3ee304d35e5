"""
Custom exceptions for fritzlog.

These exceptions provide clear error semantics across the system.
Use them to distinguish between bad device data, merge precondition
violations, persistence failures, and device/transport problems.

Module-specific subclasses (e.g. MalformedTimestamp, UnsortedBatch) live
next to the code that raises them and derive from the bases below.
"""


class FritzLogError(Exception):
    """Base exception for all fritzlog failures."""
    pass


class DataValidationError(FritzLogError):
    """Raised when device data fails parsing or normalization."""
    pass


class MergeError(FritzLogError):
    """Raised when a batch cannot be merged into the stored history."""
    pass


class StoreError(FritzLogError):
    """Raised when the persistence layer fails or detects an inconsistency."""
    pass


class DeviceError(FritzLogError):
    """Raised when talking to the device fails (transport, status, payload)."""
    pass


class AuthenticationError(DeviceError):
    """Raised when the device refuses a login or returns an invalid session."""
    pass


class ConfigurationError(FritzLogError):
    """Raised when configuration is invalid or missing."""
    pass
