"""
Unit tests for HistoryCloser.
"""

import pytest
from datetime import datetime, timedelta
from pyspark.sql import SparkSession
from pyspark.sql.types import StructType, StructField, StringType, TimestampType, BooleanType

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.dimension_history.scd_type2.history_closer import HistoryCloser
from libraries.dimension_history.scd_type2.change_detector import CURRENT_KEY_COLUMN
from libraries.dimension_history.scd_type2.date_manager import OPEN_END_TS
from libraries.dimension_history.common.config import DimensionConfig
from libraries.dimension_history.common.exceptions import ConsistencyError

BATCH_TS = datetime(2024, 1, 2, 10, 30, 15)


class TestHistoryCloser:
    """Test cases for HistoryCloser."""

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
    def closer(self, config):
        return HistoryCloser(config)

    @pytest.fixture
    def closures(self, spark, closer):
        changed = spark.createDataFrame(
            [("V1", "INACTIVE", "k1"), ("V2", "ACTIVE", "k2")],
            ["veteran_id", "status", CURRENT_KEY_COLUMN]
        )
        return closer.build_closures(changed, BATCH_TS)

    @pytest.fixture
    def inserts(self, spark):
        return spark.createDataFrame(
            [("n1", "V1", "INACTIVE"), ("n2", "V2", "ACTIVE"), ("n3", "V3", "ACTIVE")],
            ["veteran_key", "veteran_id", "status"]
        )

    def _latest(self, spark, rows):
        schema = StructType([
            StructField("veteran_key", StringType(), True),
            StructField("veteran_id", StringType(), True),
            StructField("is_current", BooleanType(), True),
            StructField("effective_end_ts_utc", TimestampType(), True)
        ])
        return spark.createDataFrame(rows, schema)

    def test_build_closures(self, closures):
        """Closures end the current row at the full batch timestamp."""
        rows = {row["veteran_id"]: row for row in closures.collect()}

        assert set(closures.columns) == {"veteran_key", "veteran_id", "effective_end_ts_utc", "modified_ts_utc"}
        assert rows["V1"]["veteran_key"] == "k1"
        assert rows["V1"]["effective_end_ts_utc"] == BATCH_TS
        assert rows["V1"]["modified_ts_utc"] == BATCH_TS

    def test_reconcile_still_current(self, spark, closer, closures, inserts):
        """Closures of rows that are still current go ahead unchanged."""
        latest = self._latest(spark, [
            ("k1", "V1", True, OPEN_END_TS),
            ("k2", "V2", True, OPEN_END_TS)
        ])

        kept_closures, kept_inserts, already_closed = closer.reconcile(closures, inserts, latest, BATCH_TS)

        assert already_closed == 0
        assert kept_closures.count() == 2
        assert kept_inserts.count() == 3

    def test_reconcile_closed_within_grace(self, spark, closer, closures, inserts):
        """A row closed by a near-concurrent run drops both closure and insert."""
        latest = self._latest(spark, [
            ("k1", "V1", False, BATCH_TS + timedelta(minutes=2)),
            ("k2", "V2", True, OPEN_END_TS)
        ])

        kept_closures, kept_inserts, already_closed = closer.reconcile(closures, inserts, latest, BATCH_TS)

        assert already_closed == 1
        assert [r["veteran_id"] for r in kept_closures.collect()] == ["V2"]
        assert sorted(r["veteran_id"] for r in kept_inserts.collect()) == ["V2", "V3"]

    def test_reconcile_closed_outside_grace(self, spark, closer, closures, inserts):
        """A row closed long before the batch means history changed underneath."""
        latest = self._latest(spark, [
            ("k1", "V1", False, BATCH_TS - timedelta(hours=3)),
            ("k2", "V2", True, OPEN_END_TS)
        ])

        with pytest.raises(ConsistencyError) as exc_info:
            closer.reconcile(closures, inserts, latest, BATCH_TS)

        assert exc_info.value.offending_keys == [("V1",)]
        assert exc_info.value.error_code == "CONSISTENCY_ERROR"

    def test_reconcile_row_missing(self, spark, closer, closures, inserts):
        """A targeted row that disappeared is a consistency error."""
        latest = self._latest(spark, [("k2", "V2", True, OPEN_END_TS)])

        with pytest.raises(ConsistencyError):
            closer.reconcile(closures, inserts, latest, BATCH_TS)
