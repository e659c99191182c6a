"""
Custom exceptions for dimension history library.
"""


class DimensionalProcessingError(Exception):
    """Base exception for dimension history library."""

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class ValidationError(DimensionalProcessingError):
    """Exception raised when source records are malformed or incomplete."""

    def __init__(self, message: str, validation_errors: list = None):
        super().__init__(message, "VALIDATION_ERROR")
        self.validation_errors = validation_errors or []


class ConsistencyError(DimensionalProcessingError):
    """Exception raised when a dimension violates its history invariants."""

    def __init__(self, message: str, entity_type: str = None, offending_keys: list = None):
        super().__init__(message, "CONSISTENCY_ERROR")
        self.entity_type = entity_type
        self.offending_keys = offending_keys or []


class TransientError(DimensionalProcessingError):
    """Exception raised on platform or connection failures that may succeed on retry."""

    def __init__(self, message: str, operation: str = None):
        super().__init__(message, "TRANSIENT_ERROR")
        self.operation = operation


class ConfigurationError(DimensionalProcessingError):
    """Exception raised when configuration is invalid or cannot be resolved."""

    def __init__(self, message: str, config_field: str = None):
        super().__init__(message, "CONFIGURATION_ERROR")
        self.config_field = config_field


class SCDProcessingError(DimensionalProcessingError):
    """Exception raised when SCD processing fails."""

    def __init__(self, message: str, processing_step: str = None):
        super().__init__(message, "SCD_PROCESSING_ERROR")
        self.processing_step = processing_step


class KeyResolutionError(DimensionalProcessingError):
    """Exception raised when key resolution fails."""

    def __init__(self, message: str, resolution_step: str = None):
        super().__init__(message, "KEY_RESOLUTION_ERROR")
        self.resolution_step = resolution_step


class InvalidStateTransitionError(DimensionalProcessingError):
    """Exception raised when a batch execution record is moved illegally."""

    def __init__(self, message: str, current_state: str = None, requested_state: str = None):
        super().__init__(message, "INVALID_STATE_TRANSITION")
        self.current_state = current_state
        self.requested_state = requested_state
