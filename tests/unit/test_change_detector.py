"""
Unit tests for ChangeDetector.
"""

import pytest
from datetime import datetime
from pyspark.sql import SparkSession
from pyspark.sql.types import StructType, StructField, StringType, TimestampType, BooleanType

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.dimension_history.scd_type2.change_detector import ChangeDetector, CHANGE_TYPE_COLUMN, CURRENT_KEY_COLUMN
from libraries.dimension_history.scd_type2.hash_manager import HashManager
from libraries.dimension_history.common.config import DimensionConfig, ChangeType

BATCH_TS = datetime(2024, 1, 2, 10, 0, 0)


class TestChangeDetector:
    """Test cases for ChangeDetector."""

    @pytest.fixture(scope="class")
    def spark(self):
        """Create Spark session for testing."""
        return (SparkSession.builder.appName("test").master("local[1]")
                .config("spark.sql.session.timeZone", "UTC")
                .config("spark.sql.shuffle.partitions", "1")
                .getOrCreate())

    @pytest.fixture
    def config(self):
        """Create dimension configuration for testing."""
        return DimensionConfig(
            entity_type="veterans",
            target_table="dim_veterans",
            staging_table="stg_veterans",
            business_key_columns=["veteran_id"],
            scd_columns=["status"],
            surrogate_key_column="veteran_key"
        )

    @pytest.fixture
    def hash_manager(self, config):
        return HashManager(config)

    @pytest.fixture
    def source_df(self, spark, hash_manager):
        """Hashed source records: one new, one changed, one unchanged."""
        df = spark.createDataFrame(
            [("V1", "INACTIVE"), ("V2", "ACTIVE"), ("V3", "ACTIVE")],
            ["veteran_id", "status"]
        )
        return hash_manager.compute_scd_hash(df)

    def _current_rows(self, spark, hash_manager, rows):
        """Build current dimension rows from (id, status, key, start) tuples."""
        hashes = {
            r["status"]: r["scd_hash"]
            for r in hash_manager.compute_scd_hash(
                spark.createDataFrame([("x", "ACTIVE"), ("y", "INACTIVE")], ["veteran_id", "status"])
            ).collect()
        }
        schema = StructType([
            StructField("veteran_key", StringType(), True),
            StructField("veteran_id", StringType(), True),
            StructField("status", StringType(), True),
            StructField("scd_hash", StringType(), True),
            StructField("effective_start_ts_utc", TimestampType(), True),
            StructField("is_current", BooleanType(), True)
        ])
        data = [(key, vid, status, hashes[status], start, True) for vid, status, key, start in rows]
        return spark.createDataFrame(data, schema)

    def _types(self, plan):
        return {row["veteran_id"]: row[CHANGE_TYPE_COLUMN] for row in plan.classified.collect()}

    def test_classifies_new_changed_unchanged(self, config, spark, hash_manager, source_df):
        """Records are classified against current rows by fingerprint."""
        current = self._current_rows(spark, hash_manager, [
            ("V1", "ACTIVE", "k1", datetime(2024, 1, 1)),
            ("V2", "ACTIVE", "k2", datetime(2024, 1, 1))
        ])

        plan = ChangeDetector(config).detect_changes(source_df, current, BATCH_TS)

        assert self._types(plan) == {
            "V1": ChangeType.CHANGED.value,
            "V2": ChangeType.UNCHANGED.value,
            "V3": ChangeType.NEW.value
        }
        assert plan.counts() == {"NEW": 1, "CHANGED": 1, "UNCHANGED": 1}

    def test_changed_records_carry_current_key(self, config, spark, hash_manager, source_df):
        """Changed records know which current row they replace."""
        current = self._current_rows(spark, hash_manager, [
            ("V1", "ACTIVE", "k1", datetime(2024, 1, 1))
        ])

        plan = ChangeDetector(config).detect_changes(source_df, current, BATCH_TS)
        changed = plan.changed_records.collect()

        assert len(changed) == 1
        assert changed[0][CURRENT_KEY_COLUMN] == "k1"
        assert plan.records_to_insert.count() == 3

    def test_rows_written_at_batch_time_are_unchanged(self, config, spark, hash_manager, source_df):
        """A current row started at or after the batch time is never superseded by it."""
        current = self._current_rows(spark, hash_manager, [
            ("V1", "ACTIVE", "k1", BATCH_TS),
            ("V2", "INACTIVE", "k2", datetime(2024, 1, 3))
        ])

        plan = ChangeDetector(config).detect_changes(source_df, current, BATCH_TS)
        types = self._types(plan)

        assert types["V1"] == ChangeType.UNCHANGED.value
        assert types["V2"] == ChangeType.UNCHANGED.value
        assert plan.changed_records.count() == 0

    def test_empty_dimension(self, config, spark, hash_manager, source_df):
        """Everything is new when the dimension has no rows."""
        current = self._current_rows(spark, hash_manager, [])

        plan = ChangeDetector(config).detect_changes(source_df, current, BATCH_TS)

        assert plan.counts() == {"NEW": 3, "CHANGED": 0, "UNCHANGED": 0}
        assert plan.new_records.count() == 3
        assert plan.unchanged_records.count() == 0

    def test_trailing_whitespace_is_a_change(self, config, spark, hash_manager):
        current = self._current_rows(spark, hash_manager, [
            ("V1", "ACTIVE", "k1", datetime(2024, 1, 1))
        ])
        source = hash_manager.compute_scd_hash(spark.createDataFrame([("V1", "ACTIVE ")], ["veteran_id", "status"]))

        plan = ChangeDetector(config).detect_changes(source, current, BATCH_TS)

        assert self._types(plan) == {"V1": ChangeType.CHANGED.value}
