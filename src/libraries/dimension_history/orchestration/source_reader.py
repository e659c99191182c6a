"""
Readers for staged source extracts.
"""

from typing import Dict
from pyspark.errors import AnalysisException
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.functions import col, lit
from py4j.protocol import Py4JNetworkError
import logging

from ..common.config import DimensionConfig, ProcessingMode
from ..common.exceptions import ConfigurationError, TransientError

logger = logging.getLogger(__name__)


class SourceExtractReader:
    """Read-only access to the staged records of one entity."""

    def read(self, dimension: DimensionConfig, table_name: str, batch_id: str,
             mode: ProcessingMode) -> DataFrame:
        """
        Read the staged records for a dimension load.

        Args:
            dimension: Dimension configuration
            table_name: Resolved staging table name
            batch_id: Batch identifier
            mode: FULL reads the whole staging snapshot, INCREMENTAL only this batch's rows

        Returns:
            Staged source records
        """
        return self._apply_mode(self._load(dimension, table_name), dimension, batch_id, mode)

    def _load(self, dimension: DimensionConfig, table_name: str) -> DataFrame:
        raise NotImplementedError

    def _apply_mode(self, df: DataFrame, dimension: DimensionConfig, batch_id: str,
                    mode: ProcessingMode) -> DataFrame:
        if mode == ProcessingMode.FULL:
            return df

        batch_column = dimension.batch_id_column
        if batch_column not in df.columns:
            raise ConfigurationError(
                f"Staging data for {dimension.entity_type} has no {batch_column} column; "
                f"INCREMENTAL mode is not possible",
                "batch_id_column"
            )
        logger.info(f"Reading {dimension.entity_type} rows of batch {batch_id} only")
        return df.filter(col(batch_column) == lit(batch_id))


class StagingTableReader(SourceExtractReader):
    """Reads staged records from the resolved staging table."""

    def __init__(self, spark: SparkSession):
        self.spark = spark

    def _load(self, dimension: DimensionConfig, table_name: str) -> DataFrame:
        try:
            return self.spark.table(table_name)
        except AnalysisException as e:
            raise ConfigurationError(
                f"Staging table {table_name} for {dimension.entity_type} cannot be read: {str(e)}",
                "staging_table"
            ) from e
        except Py4JNetworkError as e:
            raise TransientError(f"Lost connection while reading {table_name}: {str(e)}", "read_source") from e


class DataFrameSourceReader(SourceExtractReader):
    """Serves staged records from DataFrames supplied per entity type."""

    def __init__(self, frames: Dict[str, DataFrame] = None):
        self.frames = dict(frames or {})

    def set_frame(self, entity_type: str, df: DataFrame) -> None:
        self.frames[entity_type] = df

    def _load(self, dimension: DimensionConfig, table_name: str) -> DataFrame:
        if dimension.entity_type not in self.frames:
            raise ConfigurationError(
                f"No staged data supplied for {dimension.entity_type}", "staging_table"
            )
        return self.frames[dimension.entity_type]
