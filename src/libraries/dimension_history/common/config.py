"""
Configuration classes for dimension history library.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Callable
from enum import Enum


class DeduplicationStrategy(Enum):
    """Enumeration of available source deduplication strategies."""
    LATEST = "latest"
    EARLIEST = "earliest"


class ProcessingMode(Enum):
    """How much of the staging extract a batch reads."""
    FULL = "FULL"
    INCREMENTAL = "INCREMENTAL"


class ChangeType(Enum):
    """Classification of a source record against the current dimension row."""
    NEW = "NEW"
    CHANGED = "CHANGED"
    UNCHANGED = "UNCHANGED"


def _unique(columns: List[str]) -> List[str]:
    return list(dict.fromkeys(columns))  # Preserves order, removes duplicates


@dataclass
class DimensionConfig:
    """Configuration for loading one SCD Type 2 dimension."""

    # Required parameters
    entity_type: str
    target_table: str
    staging_table: str
    business_key_columns: List[str]
    scd_columns: List[str]
    surrogate_key_column: str  # e.g. veteran_key, evaluator_key

    # Attributes carried to the target but excluded from change tracking
    untracked_columns: List[str] = field(default_factory=list)

    # Location
    schema_name: str = "WAREHOUSE"
    staging_schema: str = "STAGING"

    # Orchestration
    depends_on: List[str] = field(default_factory=list)
    enabled: bool = True

    # Source handling
    default_source_system: str = "UNKNOWN"
    dedup_order_column: Optional[str] = None
    deduplication_strategy: str = "latest"
    close_grace_minutes: int = 5

    # Standard column names
    scd_hash_column: str = "scd_hash"
    effective_start_column: str = "effective_start_ts_utc"
    effective_end_column: str = "effective_end_ts_utc"
    is_current_column: str = "is_current"
    source_system_column: str = "source_system"
    created_ts_column: str = "created_ts_utc"
    modified_ts_column: str = "modified_ts_utc"
    batch_id_column: str = "batch_id"

    hash_algorithm: str = "sha256"

    # Error handling
    error_flag_column: str = "_error_flag"
    error_message_column: str = "_error_message"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.entity_type:
            raise ValueError("entity_type is required")
        if not self.target_table:
            raise ValueError("target_table is required")
        if not self.staging_table:
            raise ValueError("staging_table is required")
        if not self.business_key_columns:
            raise ValueError("business_key_columns cannot be empty")
        if not self.scd_columns:
            raise ValueError("scd_columns cannot be empty")
        if not self.surrogate_key_column:
            raise ValueError("surrogate_key_column is required")

        if not self.tracked_columns:
            raise ValueError("scd_columns must contain at least one non-key column")

        overlap = set(self.scd_columns) & set(self.untracked_columns)
        if overlap:
            raise ValueError(f"Columns cannot be both tracked and untracked: {sorted(overlap)}")

        if self.hash_algorithm.lower() not in ["sha256", "md5"]:
            raise ValueError(f"Unsupported hash algorithm: {self.hash_algorithm}")
        if self.close_grace_minutes < 0:
            raise ValueError("close_grace_minutes cannot be negative")

        valid_strategies = [strategy.value for strategy in DeduplicationStrategy]
        if self.deduplication_strategy not in valid_strategies:
            raise ValueError(f"deduplication_strategy must be one of {valid_strategies}")

    @property
    def tracked_columns(self) -> List[str]:
        """Tracked attributes, without any business key columns."""
        return [c for c in _unique(self.scd_columns) if c not in self.business_key_columns]

    @property
    def attribute_columns(self) -> List[str]:
        """Business keys followed by tracked and untracked attributes."""
        return _unique(self.business_key_columns + self.tracked_columns + self.untracked_columns)

    @property
    def target_columns(self) -> List[str]:
        """Explicit, ordered column list of the dimension table."""
        return [self.surrogate_key_column] + self.attribute_columns + [
            self.scd_hash_column,
            self.effective_start_column,
            self.effective_end_column,
            self.is_current_column,
            self.source_system_column,
            self.created_ts_column,
            self.modified_ts_column
        ]


@dataclass
class FactStageConfig:
    """Configuration for a fact-loading stage that runs after its dimensions."""

    name: str
    depends_on: List[str]
    loader: Callable[..., Any]
    enabled: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.name:
            raise ValueError("name is required")
        if not callable(self.loader):
            raise ValueError(f"loader for stage '{self.name}' must be callable")


@dataclass
class PipelineConfig:
    """Dimensions and fact stages making up one batch."""

    dimensions: List[DimensionConfig]
    fact_stages: List[FactStageConfig] = field(default_factory=list)

    # Retry policy for transient failures (attempts beyond the first)
    max_retries: int = 2
    retry_backoff_seconds: float = 1.0

    audit_table: str = "metadata.etl_execution_log"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.dimensions and not self.fact_stages:
            raise ValueError("pipeline must define at least one dimension or fact stage")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds cannot be negative")

        names = [d.entity_type for d in self.dimensions] + [s.name for s in self.fact_stages]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate entity or stage names: {duplicates}")

        known = set(names)
        for name, deps in self.dependencies().items():
            unknown = [d for d in deps if d not in known]
            if unknown:
                raise ValueError(f"'{name}' depends on unknown entities: {unknown}")

        # Raises on cycles
        self.execution_order()

    def dependencies(self) -> Dict[str, List[str]]:
        """Map every entity and stage name to the names it depends on."""
        deps = {d.entity_type: list(d.depends_on) for d in self.dimensions}
        deps.update({s.name: list(s.depends_on) for s in self.fact_stages})
        return deps

    def execution_order(self) -> List[str]:
        """
        Order entities and stages so every dependency runs first.

        Dimensions precede fact stages and declaration order is kept
        wherever dependencies allow it.

        Returns:
            List of entity and stage names
        """
        deps = self.dependencies()
        remaining = list(deps.keys())
        order = []
        done = set()

        while remaining:
            ready = [name for name in remaining if all(d in done for d in deps[name])]
            if not ready:
                raise ValueError(f"Dependency cycle detected among: {remaining}")
            # Take the first ready name so declaration order is kept
            name = ready[0]
            order.append(name)
            done.add(name)
            remaining.remove(name)

        return order

    def get_dimension(self, entity_type: str) -> Optional[DimensionConfig]:
        for dimension in self.dimensions:
            if dimension.entity_type == entity_type:
                return dimension
        return None

    def get_fact_stage(self, name: str) -> Optional[FactStageConfig]:
        for stage in self.fact_stages:
            if stage.name == name:
                return stage
        return None


@dataclass
class KeyResolutionConfig:
    """Configuration for dimensional key resolution."""

    # Required parameters
    dimension_entity: str
    business_key_columns: List[str]
    surrogate_key_column: str

    # Name of the key column on the fact side (defaults to surrogate_key_column)
    fact_key_column: Optional[str] = None
    unknown_key_value: str = "-1"

    # Standard column names
    effective_start_column: str = "effective_start_ts_utc"
    effective_end_column: str = "effective_end_ts_utc"
    is_current_column: str = "is_current"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.dimension_entity:
            raise ValueError("dimension_entity is required")
        if not self.business_key_columns:
            raise ValueError("business_key_columns cannot be empty")
        if not self.surrogate_key_column:
            raise ValueError("surrogate_key_column is required")
        if self.fact_key_column is None:
            self.fact_key_column = self.surrogate_key_column

    @classmethod
    def for_dimension(cls, dimension: DimensionConfig, **overrides) -> "KeyResolutionConfig":
        """Build a resolution config that matches a dimension's column names."""
        values = dict(
            dimension_entity=dimension.entity_type,
            business_key_columns=list(dimension.business_key_columns),
            surrogate_key_column=dimension.surrogate_key_column,
            effective_start_column=dimension.effective_start_column,
            effective_end_column=dimension.effective_end_column,
            is_current_column=dimension.is_current_column
        )
        values.update(overrides)
        return cls(**values)


@dataclass
class ProcessingMetrics:
    """Metrics for one dimension load."""

    records_read: int = 0
    records_rejected: int = 0
    new_records_created: int = 0
    changed_records: int = 0
    existing_records_closed: int = 0
    records_inserted: int = 0
    records_unchanged: int = 0
    processing_time_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "records_read": self.records_read,
            "records_rejected": self.records_rejected,
            "new_records_created": self.new_records_created,
            "changed_records": self.changed_records,
            "existing_records_closed": self.existing_records_closed,
            "records_inserted": self.records_inserted,
            "records_unchanged": self.records_unchanged,
            "processing_time_seconds": self.processing_time_seconds
        }


@dataclass
class ValidationResult:
    """Result of data validation."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning message."""
        self.warnings.append(warning)

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation result to dictionary."""
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings
        }
