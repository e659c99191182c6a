"""
Common utilities and configurations for dimension history library.
"""

from .config import (
    DimensionConfig,
    FactStageConfig,
    PipelineConfig,
    KeyResolutionConfig,
    ProcessingMode,
    ChangeType
)
from .environment import EnvironmentResolver, StaticEnvironmentResolver, TableEnvironmentResolver
from .exceptions import (
    DimensionalProcessingError,
    ValidationError,
    ConsistencyError,
    TransientError,
    ConfigurationError,
    SCDProcessingError,
    KeyResolutionError,
    InvalidStateTransitionError
)

__all__ = [
    "DimensionConfig",
    "FactStageConfig",
    "PipelineConfig",
    "KeyResolutionConfig",
    "ProcessingMode",
    "ChangeType",
    "EnvironmentResolver",
    "StaticEnvironmentResolver",
    "TableEnvironmentResolver",
    "DimensionalProcessingError",
    "ValidationError",
    "ConsistencyError",
    "TransientError",
    "ConfigurationError",
    "SCDProcessingError",
    "KeyResolutionError",
    "InvalidStateTransitionError"
]
