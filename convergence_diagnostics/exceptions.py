"""Project-wide exception types."""

class ConvergenceDiagnosticsError(Exception):
    """Base exception for all diagnostics errors."""


class MalformedInputError(ConvergenceDiagnosticsError):
    """Raised when supplied run outputs cannot be interpreted."""


class FitRecordError(MalformedInputError):
    """Raised when a fit record violates its structural invariants or cannot be parsed."""


class ConfigError(ConvergenceDiagnosticsError):
    """Raised when configuration is missing or malformed."""


class ConfigValidationError(ConfigError):
    """Raised when validation fails for supplied configuration."""


class ModelExecutionError(ConvergenceDiagnosticsError):
    """Raised when an external model run fails or produces no usable output."""


class ExecutionTimeoutError(ModelExecutionError):
    """Raised when an external model run exceeds its time budget."""


class ResourceLimitError(ConvergenceDiagnosticsError):
    """Raised when a batch would exceed configured resource limits."""
