"""
Storage of SCD Type 2 dimension tables.

DeltaDimensionStore commits closures and inserts in a single Delta MERGE.
DataFrameDimensionStore keeps the table as an in-memory DataFrame for local
runs and tests.
"""

from typing import Any, Dict, Optional, Tuple
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.functions import col, lit, when
from pyspark.sql.types import BooleanType, StringType, StructField, StructType, TimestampType
from delta.exceptions import (
    ConcurrentAppendException,
    ConcurrentDeleteDeleteException,
    ConcurrentDeleteReadException,
    ConcurrentTransactionException,
    ConcurrentWriteException,
    DeltaConcurrentModificationException,
    MetadataChangedException,
    ProtocolChangedException
)
from delta.tables import DeltaTable
from py4j.protocol import Py4JNetworkError
import logging

from ..common.config import DimensionConfig
from ..common.exceptions import ConfigurationError, ConsistencyError, SCDProcessingError, TransientError

logger = logging.getLogger(__name__)

MERGE_KEY_COLUMN = "_merge_key"
ACTION_COLUMN = "_action"
ACTION_CLOSE = "CLOSE"
ACTION_INSERT = "INSERT"

# Optimistic-concurrency conflicts raised by a Delta commit
WRITE_CONFLICTS = (
    DeltaConcurrentModificationException,
    ConcurrentAppendException,
    ConcurrentDeleteDeleteException,
    ConcurrentDeleteReadException,
    ConcurrentTransactionException,
    ConcurrentWriteException,
    MetadataChangedException,
    ProtocolChangedException
)


class DimensionStore:
    """Read and write access to one dimension table."""

    def __init__(self, config: DimensionConfig, table_name: str):
        self.config = config
        self.table_name = table_name

    def begin_snapshot(self) -> None:
        """Pin the state that read_all/read_current return until apply_changes."""

    def read_all(self) -> DataFrame:
        """All rows of the dimension (pinned snapshot if one was taken)."""
        raise NotImplementedError

    def read_current(self) -> DataFrame:
        """Current rows of the dimension (pinned snapshot if one was taken)."""
        return self.read_all().filter(col(self.config.is_current_column) == lit(True))

    def read_latest_rows(self, surrogate_keys: DataFrame) -> DataFrame:
        """Latest committed state of the rows with the given surrogate keys."""
        raise NotImplementedError

    def apply_changes(self, closures: DataFrame, inserts: DataFrame) -> Tuple[int, int]:
        """
        Commit closures and inserts together.

        Args:
            closures: Surrogate keys to close with their effective end and modified timestamp
            inserts: New current rows with exactly the target columns

        Returns:
            Tuple of (rows closed, rows inserted)
        """
        raise NotImplementedError

    def get_table_info(self) -> Dict[str, Any]:
        """
        Get information about the dimension table.

        Returns:
            Dictionary with table information
        """
        all_rows = self.read_all()
        record_count = all_rows.count()
        current_count = all_rows.filter(col(self.config.is_current_column) == lit(True)).count()

        return {
            "table_name": self.table_name,
            "total_records": record_count,
            "current_records": current_count,
            "historical_records": record_count - current_count
        }


class DeltaDimensionStore(DimensionStore):
    """Dimension table stored in Delta Lake."""

    def __init__(self, spark: SparkSession, config: DimensionConfig, table_name: str):
        """
        Initialize DeltaDimensionStore.

        Args:
            spark: Spark session
            config: Dimension configuration
            table_name: Fully qualified target table name
        """
        super().__init__(config, table_name)
        self.spark = spark
        self._snapshot_version: Optional[int] = None

        try:
            self.delta_table = DeltaTable.forName(spark, table_name)
        except Exception as e:
            raise ConfigurationError(
                f"Target table {table_name} for {config.entity_type} is not an accessible Delta table: {str(e)}",
                "target_table"
            ) from e

    def begin_snapshot(self) -> None:
        self._snapshot_version = self.delta_table.history(1).select("version").collect()[0][0]
        logger.info(f"Pinned {self.table_name} at version {self._snapshot_version}")

    def read_all(self) -> DataFrame:
        if self._snapshot_version is None:
            return self.delta_table.toDF()
        return self.spark.sql(f"SELECT * FROM {self.table_name} VERSION AS OF {self._snapshot_version}")

    def read_latest_rows(self, surrogate_keys: DataFrame) -> DataFrame:
        sk = self.config.surrogate_key_column
        return self.delta_table.toDF().join(surrogate_keys.select(sk).distinct(), sk, "left_semi")

    def apply_changes(self, closures: DataFrame, inserts: DataFrame) -> Tuple[int, int]:
        """
        Commit closures and inserts in one MERGE.

        Closures match their target row by surrogate key and only update it
        while it is still current, so a repeated closure is a no-op. Inserts
        carry a null merge key and never match.
        """
        cfg = self.config
        sk = cfg.surrogate_key_column

        staged_inserts = (inserts
                          .withColumn(MERGE_KEY_COLUMN, lit(None).cast("string"))
                          .withColumn(ACTION_COLUMN, lit(ACTION_INSERT)))
        staged_closures = (closures
                           .withColumn(MERGE_KEY_COLUMN, col(sk))
                           .withColumn(ACTION_COLUMN, lit(ACTION_CLOSE)))
        staged = staged_inserts.unionByName(staged_closures, allowMissingColumns=True)

        logger.info(f"Merging closures and inserts into {self.table_name}")

        try:
            (self.delta_table.alias("target")
             .merge(staged.alias("staged"), f"target.{sk} = staged.{MERGE_KEY_COLUMN}")
             .whenMatchedUpdate(
                 condition=f"target.{cfg.is_current_column} = true AND staged.{ACTION_COLUMN} = '{ACTION_CLOSE}'",
                 set={
                     cfg.effective_end_column: f"staged.{cfg.effective_end_column}",
                     cfg.is_current_column: "false",
                     cfg.modified_ts_column: f"staged.{cfg.modified_ts_column}"
                 })
             .whenNotMatchedInsert(
                 condition=f"staged.{ACTION_COLUMN} = '{ACTION_INSERT}'",
                 values={c: f"staged.{c}" for c in cfg.target_columns})
             .execute())
        except WRITE_CONFLICTS as e:
            raise TransientError(f"Concurrent write to {self.table_name}: {str(e)}", "merge") from e
        except Py4JNetworkError as e:
            raise TransientError(f"Lost connection while merging into {self.table_name}: {str(e)}", "merge") from e

        self._snapshot_version = None

        metrics = self.delta_table.history(1).select("operationMetrics").collect()[0][0] or {}
        rows_closed = int(metrics.get("numTargetRowsUpdated", 0))
        rows_inserted = int(metrics.get("numTargetRowsInserted", 0))

        logger.info(f"✅ {self.table_name}: closed {rows_closed}, inserted {rows_inserted}")
        return rows_closed, rows_inserted


class DataFrameDimensionStore(DimensionStore):
    """Dimension table held as an in-memory DataFrame."""

    def __init__(self, spark: SparkSession, config: DimensionConfig,
                 table_name: str = None, initial_df: DataFrame = None):
        """
        Initialize DataFrameDimensionStore.

        Args:
            spark: Spark session
            config: Dimension configuration
            table_name: Name used in logs (defaults to the configured target table)
            initial_df: Existing dimension rows, if any
        """
        super().__init__(config, table_name or config.target_table)
        self.spark = spark
        self._df = initial_df.select(*config.target_columns) if initial_df is not None else None
        self._snapshot = None

    def _empty_df(self) -> DataFrame:
        cfg = self.config
        fields = [StructField(cfg.surrogate_key_column, StringType(), True)]
        fields += [StructField(c, StringType(), True) for c in cfg.attribute_columns]
        fields += [
            StructField(cfg.scd_hash_column, StringType(), True),
            StructField(cfg.effective_start_column, TimestampType(), True),
            StructField(cfg.effective_end_column, TimestampType(), True),
            StructField(cfg.is_current_column, BooleanType(), True),
            StructField(cfg.source_system_column, StringType(), True),
            StructField(cfg.created_ts_column, TimestampType(), True),
            StructField(cfg.modified_ts_column, TimestampType(), True)
        ]
        return self.spark.createDataFrame([], StructType(fields))

    def _latest(self) -> DataFrame:
        return self._df if self._df is not None else self._empty_df()

    def begin_snapshot(self) -> None:
        self._snapshot = self._latest()

    def read_all(self) -> DataFrame:
        return self._snapshot if self._snapshot is not None else self._latest()

    def read_latest_rows(self, surrogate_keys: DataFrame) -> DataFrame:
        sk = self.config.surrogate_key_column
        return self._latest().join(surrogate_keys.select(sk).distinct(), sk, "left_semi")

    def apply_changes(self, closures: DataFrame, inserts: DataFrame) -> Tuple[int, int]:
        cfg = self.config
        sk = cfg.surrogate_key_column
        inserts = inserts.select(*cfg.target_columns)
        rows_inserted = inserts.count()

        if self._df is None:
            if closures.count() > 0:
                raise ConsistencyError(
                    f"Cannot close rows of empty dimension {self.table_name}", cfg.entity_type
                )
            self._df = inserts.localCheckpoint()
            self._snapshot = None
            logger.info(f"✅ {self.table_name}: closed 0, inserted {rows_inserted}")
            return 0, rows_inserted

        closing = closures.select(
            col(sk).alias("_close_key"),
            col(cfg.effective_end_column).alias("_close_end"),
            col(cfg.modified_ts_column).alias("_close_modified")
        )
        marked = (self._df.join(closing, self._df[sk] == closing["_close_key"], "left")
                  .withColumn("_closing",
                              col("_close_key").isNotNull() & (col(cfg.is_current_column) == lit(True))))

        rows_closed = marked.filter(col("_closing")).count()

        updated = (marked
                   .withColumn(cfg.effective_end_column,
                               when(col("_closing"), col("_close_end")).otherwise(col(cfg.effective_end_column)))
                   .withColumn(cfg.modified_ts_column,
                               when(col("_closing"), col("_close_modified")).otherwise(col(cfg.modified_ts_column)))
                   .withColumn(cfg.is_current_column,
                               when(col("_closing"), lit(False)).otherwise(col(cfg.is_current_column)))
                   .select(*cfg.target_columns))

        # Single assignment: readers see either the old table or the new one
        self._df = updated.unionByName(inserts).localCheckpoint()
        self._snapshot = None

        logger.info(f"✅ {self.table_name}: closed {rows_closed}, inserted {rows_inserted}")
        return rows_closed, rows_inserted

    def to_dataframe(self) -> DataFrame:
        """Latest state of the whole table."""
        return self._latest()


def create_delta_store(spark: SparkSession, config: DimensionConfig, table_name: str) -> DimensionStore:
    """Default store factory used by the batch orchestrator."""
    if spark is None:
        raise SCDProcessingError("A Spark session is required for Delta dimension stores", "store")
    return DeltaDimensionStore(spark, config, table_name)
