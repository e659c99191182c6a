"""
Unit tests for configuration classes.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.dimension_history.common.config import (
    DimensionConfig,
    FactStageConfig,
    PipelineConfig,
    KeyResolutionConfig,
    ProcessingMetrics,
    ValidationResult
)


def make_dimension(entity_type="veterans", **overrides):
    values = dict(
        entity_type=entity_type,
        target_table=f"dim_{entity_type}",
        staging_table=f"stg_{entity_type}",
        business_key_columns=["id"],
        scd_columns=["name", "status"],
        surrogate_key_column=f"{entity_type}_key"
    )
    values.update(overrides)
    return DimensionConfig(**values)


def noop_loader(context):
    return {}


class TestDimensionConfig:
    """Test cases for DimensionConfig."""

    def test_init_success(self):
        """Test successful DimensionConfig initialization."""
        config = make_dimension()

        assert config.entity_type == "veterans"
        assert config.schema_name == "WAREHOUSE"
        assert config.staging_schema == "STAGING"
        assert config.scd_hash_column == "scd_hash"
        assert config.effective_start_column == "effective_start_ts_utc"
        assert config.effective_end_column == "effective_end_ts_utc"
        assert config.is_current_column == "is_current"
        assert config.close_grace_minutes == 5
        assert config.hash_algorithm == "sha256"
        assert config.enabled is True

    def test_target_columns_order(self):
        """Target columns follow the explicit dimension layout."""
        config = make_dimension(untracked_columns=["updated_by"])

        assert config.target_columns == [
            "veterans_key", "id", "name", "status", "updated_by",
            "scd_hash", "effective_start_ts_utc", "effective_end_ts_utc", "is_current",
            "source_system", "created_ts_utc", "modified_ts_utc"
        ]

    def test_business_keys_excluded_from_tracked_columns(self):
        """Business key columns listed as scd columns are not tracked."""
        config = make_dimension(scd_columns=["id", "name"])

        assert config.tracked_columns == ["name"]
        assert config.attribute_columns == ["id", "name"]

    def test_init_empty_target_table(self):
        """Test DimensionConfig initialization with empty target table."""
        with pytest.raises(ValueError, match="target_table is required"):
            make_dimension(target_table="")

    def test_init_empty_business_key_columns(self):
        """Test DimensionConfig initialization with empty business key columns."""
        with pytest.raises(ValueError, match="business_key_columns cannot be empty"):
            make_dimension(business_key_columns=[])

    def test_init_only_key_columns_tracked(self):
        """Tracking nothing but the business key is rejected."""
        with pytest.raises(ValueError, match="at least one non-key column"):
            make_dimension(scd_columns=["id"])

    def test_init_tracked_and_untracked_overlap(self):
        """A column cannot be tracked and untracked at once."""
        with pytest.raises(ValueError, match="both tracked and untracked"):
            make_dimension(untracked_columns=["status"])

    def test_init_invalid_hash_algorithm(self):
        """Test DimensionConfig initialization with invalid hash algorithm."""
        with pytest.raises(ValueError, match="Unsupported hash algorithm"):
            make_dimension(hash_algorithm="crc32")

    def test_init_negative_grace_window(self):
        """Test DimensionConfig initialization with negative grace window."""
        with pytest.raises(ValueError, match="close_grace_minutes cannot be negative"):
            make_dimension(close_grace_minutes=-1)

    def test_init_invalid_deduplication_strategy(self):
        """Test DimensionConfig initialization with invalid deduplication strategy."""
        with pytest.raises(ValueError, match="deduplication_strategy must be one of"):
            make_dimension(deduplication_strategy="random")


class TestPipelineConfig:
    """Test cases for PipelineConfig."""

    def test_execution_order_respects_dependencies(self):
        """Dependencies run first, declaration order is kept otherwise."""
        pipeline = PipelineConfig(
            dimensions=[
                make_dimension("evaluators", depends_on=["veterans"]),
                make_dimension("veterans"),
                make_dimension("facilities")
            ],
            fact_stages=[FactStageConfig("exam_requests", ["veterans", "evaluators"], noop_loader)]
        )

        assert pipeline.execution_order() == ["veterans", "evaluators", "facilities", "exam_requests"]

    def test_unknown_dependency(self):
        """Dependencies must name configured entities or stages."""
        with pytest.raises(ValueError, match="depends on unknown entities"):
            PipelineConfig(dimensions=[make_dimension("evaluators", depends_on=["veterans"])])

    def test_dependency_cycle(self):
        """Cyclic dependencies are rejected."""
        with pytest.raises(ValueError, match="Dependency cycle detected"):
            PipelineConfig(dimensions=[
                make_dimension("a", depends_on=["b"]),
                make_dimension("b", depends_on=["a"])
            ])

    def test_duplicate_names(self):
        """Entity and stage names must be unique."""
        with pytest.raises(ValueError, match="Duplicate entity or stage names"):
            PipelineConfig(
                dimensions=[make_dimension("veterans")],
                fact_stages=[FactStageConfig("veterans", [], noop_loader)]
            )

    def test_negative_retries(self):
        """Test PipelineConfig initialization with negative retry count."""
        with pytest.raises(ValueError, match="max_retries cannot be negative"):
            PipelineConfig(dimensions=[make_dimension()], max_retries=-1)

    def test_lookup(self):
        """Dimensions and stages can be looked up by name."""
        pipeline = PipelineConfig(
            dimensions=[make_dimension("veterans")],
            fact_stages=[FactStageConfig("exam_requests", ["veterans"], noop_loader)]
        )

        assert pipeline.get_dimension("veterans").entity_type == "veterans"
        assert pipeline.get_dimension("exam_requests") is None
        assert pipeline.get_fact_stage("exam_requests").depends_on == ["veterans"]

    def test_fact_stage_loader_must_be_callable(self):
        """Test FactStageConfig initialization with a non-callable loader."""
        with pytest.raises(ValueError, match="must be callable"):
            FactStageConfig("exam_requests", [], "not callable")


class TestKeyResolutionConfig:
    """Test cases for KeyResolutionConfig."""

    def test_fact_key_defaults_to_surrogate_key(self):
        """The fact key column defaults to the surrogate key column."""
        config = KeyResolutionConfig(
            dimension_entity="veterans",
            business_key_columns=["veteran_id"],
            surrogate_key_column="veteran_key"
        )

        assert config.fact_key_column == "veteran_key"
        assert config.unknown_key_value == "-1"

    def test_for_dimension(self):
        """Resolution config mirrors the dimension's column names."""
        dimension = make_dimension("veterans", effective_start_column="valid_from")

        config = KeyResolutionConfig.for_dimension(dimension, fact_key_column="vet_key")

        assert config.dimension_entity == "veterans"
        assert config.business_key_columns == ["id"]
        assert config.surrogate_key_column == "veterans_key"
        assert config.fact_key_column == "vet_key"
        assert config.effective_start_column == "valid_from"

    def test_init_empty_business_key_columns(self):
        """Test KeyResolutionConfig initialization with empty business key columns."""
        with pytest.raises(ValueError, match="business_key_columns cannot be empty"):
            KeyResolutionConfig(
                dimension_entity="veterans",
                business_key_columns=[],
                surrogate_key_column="veteran_key"
            )


class TestProcessingMetrics:
    """Test cases for ProcessingMetrics."""

    def test_to_dict(self):
        """Test ProcessingMetrics to_dict method."""
        metrics = ProcessingMetrics(records_read=10, records_inserted=4, existing_records_closed=2)

        result = metrics.to_dict()

        assert result["records_read"] == 10
        assert result["records_inserted"] == 4
        assert result["existing_records_closed"] == 2
        assert result["records_rejected"] == 0


class TestValidationResult:
    """Test cases for ValidationResult."""

    def test_add_error(self):
        """Test adding error to ValidationResult."""
        result = ValidationResult(is_valid=True)
        result.add_error("Test error")

        assert result.is_valid is False
        assert "Test error" in result.errors

    def test_add_warning(self):
        """Warnings leave the result valid."""
        result = ValidationResult(is_valid=True)
        result.add_warning("Test warning")

        assert result.is_valid is True
        assert result.to_dict()["warnings"] == ["Test warning"]
