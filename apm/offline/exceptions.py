"""
Custom Exceptions Module

This module defines the exception hierarchy for the offline audio
processing pipeline, providing specific error types for each failure
the command-line tool reports.
"""

class APMError(Exception):
    """Base exception class for all offline pipeline errors."""
    pass


class UsageError(APMError):
    """Wrong argument count or unknown command-line flag."""
    pass


class FileOpenError(APMError):
    """An input or output file cannot be opened in its required mode."""
    
    def __init__(self, role: str, path: str, reason: str = ""):
        self.role = role
        self.path = path
        message = f"Cannot open {role} file {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class FormatError(APMError):
    """Container header violates the canonical 16-bit PCM layout."""
    pass


class IOError(APMError):
    """Short read of a fixed-size header or unusable stream."""
    pass


class ConfigurationError(APMError):
    """Error in processing configuration."""
    pass


class ProcessingError(APMError):
    """Error while handing frames to the processing engine."""
    pass
