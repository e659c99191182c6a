"""
Dimension History Library

SCD Type 2 history maintenance for warehouse dimension tables and batch
orchestration of dimension loads followed by dependent fact stages.

Main Components:
- SCDProcessor: Applies one batch of staged records to a dimension
- BatchOrchestrator: Runs dimension loads and fact stages in dependency order
- DimensionalKeyResolver: Resolves dimension keys for fact tables

Author: Data Engineering Team
Version: 1.0.0
"""

from .scd_type2.scd_processor import SCDProcessor
from .scd_type2.dimension_store import DimensionStore, DeltaDimensionStore, DataFrameDimensionStore
from .key_resolution.key_resolver import DimensionalKeyResolver
from .orchestration.batch_orchestrator import BatchOrchestrator, StageContext
from .orchestration.execution_record import BatchExecutionRecord, BatchStatus, EntityLoadResult, LoadStatus
from .common.config import (
    DimensionConfig,
    FactStageConfig,
    PipelineConfig,
    KeyResolutionConfig,
    ProcessingMode
)
from .common.config_loader import load_pipeline_config
from .common.environment import EnvironmentResolver, StaticEnvironmentResolver, TableEnvironmentResolver
from .common.exceptions import (
    DimensionalProcessingError,
    ValidationError,
    ConsistencyError,
    TransientError,
    ConfigurationError,
    SCDProcessingError,
    KeyResolutionError,
    InvalidStateTransitionError
)

__version__ = "1.0.0"
__author__ = "Data Engineering Team"

__all__ = [
    "SCDProcessor",
    "DimensionStore",
    "DeltaDimensionStore",
    "DataFrameDimensionStore",
    "DimensionalKeyResolver",
    "BatchOrchestrator",
    "StageContext",
    "BatchExecutionRecord",
    "BatchStatus",
    "EntityLoadResult",
    "LoadStatus",
    "DimensionConfig",
    "FactStageConfig",
    "PipelineConfig",
    "KeyResolutionConfig",
    "ProcessingMode",
    "load_pipeline_config",
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
