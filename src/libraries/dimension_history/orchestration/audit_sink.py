"""
Append-only sinks for batch execution records.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pyspark.sql import SparkSession
from pyspark.sql.functions import col, min as spark_min
from pyspark.sql.types import LongType, StringType, StructField, StructType, TimestampType
import logging

from ..common.exceptions import InvalidStateTransitionError
from .execution_record import BatchExecutionRecord, BatchStatus, EntityLoadResult

logger = logging.getLogger(__name__)

AUDIT_SCHEMA = StructType([
    StructField("batch_id", StringType(), False),
    StructField("mode", StringType(), True),
    StructField("processing_ts", TimestampType(), True),
    StructField("batch_status", StringType(), True),
    StructField("batch_started_at", TimestampType(), True),
    StructField("batch_ended_at", TimestampType(), True),
    StructField("batch_error_detail", StringType(), True),
    StructField("entity_type", StringType(), True),
    StructField("status", StringType(), True),
    StructField("rows_inserted", LongType(), True),
    StructField("rows_updated", LongType(), True),
    StructField("rows_rejected", LongType(), True),
    StructField("rows_unchanged", LongType(), True),
    StructField("attempts", LongType(), True),
    StructField("error_detail", StringType(), True),
    StructField("error_code", StringType(), True),
    StructField("started_at", TimestampType(), True),
    StructField("ended_at", TimestampType(), True)
])


class AuditSink:
    """
    Append-only destination for batch execution records.

    A running batch writes a start row and one row per completed load
    through append_progress; the finalised record is written by append.
    """

    def append_progress(self, record: BatchExecutionRecord, result: EntityLoadResult = None) -> None:
        """
        Write the start of a batch, or one completed load of it.

        Args:
            record: Running batch execution record
            result: Load that just completed, or None when the batch starts
        """
        self._require_running(record)
        self._write([record.progress_row(result)], record)

    def append(self, record: BatchExecutionRecord) -> None:
        """Write the finalised record, one row per load."""
        self._require_terminal(record)
        self._write(record.summary_rows(), record)

    def find_processing_ts(self, batch_id: str) -> Optional[datetime]:
        """Processing timestamp used by an earlier run of the batch, if any."""
        raise NotImplementedError

    def _write(self, rows: List[Dict[str, Any]], record: BatchExecutionRecord) -> None:
        raise NotImplementedError

    @staticmethod
    def _require_running(record: BatchExecutionRecord) -> None:
        if record.status != BatchStatus.RUNNING:
            raise InvalidStateTransitionError(
                f"Batch {record.batch_id} is {record.status.value}; progress is only logged while it runs",
                record.status.value
            )

    @staticmethod
    def _require_terminal(record: BatchExecutionRecord) -> None:
        if not record.is_terminal:
            raise InvalidStateTransitionError(
                f"Batch {record.batch_id} is {record.status.value}; only finalised records are audited",
                record.status.value
            )


class InMemoryAuditSink(AuditSink):
    """Keeps execution log rows and finalised records in lists."""

    def __init__(self):
        self.rows: List[Dict[str, Any]] = []
        self.records: List[BatchExecutionRecord] = []

    def append(self, record: BatchExecutionRecord) -> None:
        super().append(record)
        self.records.append(record)
        logger.info(f"Recorded batch {record.batch_id} as {record.status.value}")

    def _write(self, rows: List[Dict[str, Any]], record: BatchExecutionRecord) -> None:
        self.rows.extend(rows)

    def find_processing_ts(self, batch_id: str) -> Optional[datetime]:
        for row in self.rows:
            if row["batch_id"] == batch_id and row["processing_ts"] is not None:
                return row["processing_ts"]
        return None

    def rows_for(self, batch_id: str) -> List[Dict[str, Any]]:
        return [row for row in self.rows if row["batch_id"] == batch_id]

    def records_for(self, batch_id: str) -> List[BatchExecutionRecord]:
        return [record for record in self.records if record.batch_id == batch_id]


class DeltaAuditSink(AuditSink):
    """Appends execution log rows to a Delta table."""

    def __init__(self, spark: SparkSession, table_name: str):
        """
        Initialize DeltaAuditSink.

        Args:
            spark: Spark session
            table_name: Fully qualified execution-log table
        """
        self.spark = spark
        self.table_name = table_name

    def _write(self, rows: List[Dict[str, Any]], record: BatchExecutionRecord) -> None:
        values = [tuple(row[f.name] for f in AUDIT_SCHEMA.fields) for row in rows]

        (self.spark.createDataFrame(values, AUDIT_SCHEMA)
         .write
         .format("delta")
         .mode("append")
         .saveAsTable(self.table_name))

        logger.info(f"Appended {len(values)} execution log rows for batch {record.batch_id} to {self.table_name}")

    def find_processing_ts(self, batch_id: str) -> Optional[datetime]:
        if not self.spark.catalog.tableExists(self.table_name):
            return None

        return (self.spark.table(self.table_name)
                .filter((col("batch_id") == batch_id) & col("processing_ts").isNotNull())
                .agg(spark_min("processing_ts").alias("processing_ts"))
                .collect()[0]["processing_ts"])
