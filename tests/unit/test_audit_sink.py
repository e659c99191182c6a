"""
Unit tests for audit sinks.
"""

import pytest
from datetime import datetime
from unittest.mock import Mock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.dimension_history.orchestration.audit_sink import AUDIT_SCHEMA, DeltaAuditSink, InMemoryAuditSink
from libraries.dimension_history.orchestration.execution_record import (
    BatchExecutionRecord,
    EntityLoadResult,
    LoadStatus
)
from libraries.dimension_history.common.config import ProcessingMode
from libraries.dimension_history.common.exceptions import InvalidStateTransitionError

PROCESSING_TS = datetime(2024, 1, 2, 6, 0, 0)


def finished_record(batch_id="B-1"):
    record = BatchExecutionRecord(batch_id=batch_id, mode=ProcessingMode.FULL)
    record.start(PROCESSING_TS)
    record.record_result(EntityLoadResult(entity_type="veterans", status=LoadStatus.SUCCEEDED, rows_inserted=3))
    record.record_result(EntityLoadResult(entity_type="evaluators", status=LoadStatus.SKIPPED))
    record.finalize()
    return record


class TestInMemoryAuditSink:
    """Test cases for InMemoryAuditSink."""

    def test_append_and_lookup(self):
        sink = InMemoryAuditSink()
        sink.append(finished_record())

        assert len(sink.records_for("B-1")) == 1
        assert sink.find_processing_ts("B-1") == PROCESSING_TS
        assert sink.find_processing_ts("B-2") is None

    def test_running_record_rejected(self):
        """Only finalised records are audited."""
        record = BatchExecutionRecord(batch_id="B-1", mode=ProcessingMode.FULL)
        record.start(PROCESSING_TS)

        with pytest.raises(InvalidStateTransitionError):
            InMemoryAuditSink().append(record)

    def test_progress_rows_while_running(self):
        record = BatchExecutionRecord(batch_id="B-1", mode=ProcessingMode.FULL)
        record.start(PROCESSING_TS)
        sink = InMemoryAuditSink()

        sink.append_progress(record)
        result = EntityLoadResult(entity_type="veterans", status=LoadStatus.SUCCEEDED, rows_inserted=3)
        record.record_result(result)
        sink.append_progress(record, result)

        assert [r["entity_type"] for r in sink.rows_for("B-1")] == [None, "veterans"]
        assert sink.rows_for("B-1")[1]["rows_inserted"] == 3
        assert sink.records == []
        assert sink.find_processing_ts("B-1") == PROCESSING_TS

    def test_progress_after_finalize_rejected(self):
        with pytest.raises(InvalidStateTransitionError):
            InMemoryAuditSink().append_progress(finished_record())


class TestDeltaAuditSink:
    """Test cases for DeltaAuditSink with a mocked Spark session."""

    @pytest.fixture
    def mock_spark(self):
        return Mock()

    def test_append_writes_one_row_per_load(self, mock_spark):
        sink = DeltaAuditSink(mock_spark, "metadata.etl_execution_log")

        sink.append(finished_record())

        rows, schema = mock_spark.createDataFrame.call_args.args
        assert schema is AUDIT_SCHEMA
        assert len(rows) == 2
        assert all(len(row) == len(AUDIT_SCHEMA.fields) for row in rows)
        assert rows[0][0] == "B-1"

        writer = mock_spark.createDataFrame.return_value.write
        writer.format.assert_called_once_with("delta")
        writer.format.return_value.mode.assert_called_once_with("append")
        writer.format.return_value.mode.return_value.saveAsTable.assert_called_once_with(
            "metadata.etl_execution_log"
        )

    def test_append_progress_writes_one_row(self, mock_spark):
        record = BatchExecutionRecord(batch_id="B-1", mode=ProcessingMode.FULL)
        record.start(PROCESSING_TS)

        DeltaAuditSink(mock_spark, "metadata.etl_execution_log").append_progress(record)

        rows, schema = mock_spark.createDataFrame.call_args.args
        assert schema is AUDIT_SCHEMA
        assert len(rows) == 1
        assert rows[0][0] == "B-1"
        assert rows[0][2] == PROCESSING_TS

    def test_find_processing_ts_without_table(self, mock_spark):
        mock_spark.catalog.tableExists.return_value = False

        assert DeltaAuditSink(mock_spark, "metadata.etl_execution_log").find_processing_ts("B-1") is None
        mock_spark.table.assert_not_called()

    def test_find_processing_ts(self, mock_spark):
        mock_spark.catalog.tableExists.return_value = True
        (mock_spark.table.return_value.filter.return_value.agg.return_value
         .collect.return_value) = [{"processing_ts": PROCESSING_TS}]

        with patch('libraries.dimension_history.orchestration.audit_sink.col'), \
                patch('libraries.dimension_history.orchestration.audit_sink.spark_min'):
            result = DeltaAuditSink(mock_spark, "metadata.etl_execution_log").find_processing_ts("B-1")

        assert result == PROCESSING_TS
        mock_spark.table.assert_called_once_with("metadata.etl_execution_log")
