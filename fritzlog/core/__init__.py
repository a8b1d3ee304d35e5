"""
Core module: Configuration, logging, and exception handling.
"""

from .config import Config, config
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    DataValidationError,
    DeviceError,
    FritzLogError,
    MergeError,
    StoreError,
)

__all__ = [
    "Config",
    "config",
    "FritzLogError",
    "DataValidationError",
    "MergeError",
    "StoreError",
    "DeviceError",
    "AuthenticationError",
    "ConfigurationError",
]
