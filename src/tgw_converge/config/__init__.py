"""Configuration parsing and validation."""

from .models import AWSConfig, LoggingConfig, PollingConfig, Settings
from .parser import Config, ConfigValidationError

__all__ = [
    'AWSConfig',
    'Config',
    'ConfigValidationError',
    'LoggingConfig',
    'PollingConfig',
    'Settings',
]
