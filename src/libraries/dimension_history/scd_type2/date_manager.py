"""
Date management utilities for SCD processing.
"""

from datetime import datetime, timedelta
from pyspark.sql import DataFrame
from pyspark.sql.functions import col, lit, sha2, struct, to_json
import logging

from ..common.config import DimensionConfig

logger = logging.getLogger(__name__)

# Effective end of a row that is still current
OPEN_END_TS = datetime(9999, 12, 31, 23, 59, 59)


class DateManager:
    """Manages effective dates, audit timestamps and surrogate keys."""

    def __init__(self, config: DimensionConfig):
        """
        Initialize DateManager with configuration.

        Args:
            config: Dimension configuration
        """
        self.config = config

    @property
    def grace_window(self) -> timedelta:
        return timedelta(minutes=self.config.close_grace_minutes)

    def set_effective_start(self, df: DataFrame, batch_ts: datetime) -> DataFrame:
        """
        Stamp the batch processing time as effective start.

        Args:
            df: Input DataFrame
            batch_ts: Batch processing timestamp

        Returns:
            DataFrame with effective start set
        """
        return df.withColumn(self.config.effective_start_column, lit(batch_ts).cast("timestamp"))

    def set_effective_end_date(self, df: DataFrame, end_ts: datetime = OPEN_END_TS) -> DataFrame:
        """
        Set effective end date for records.

        Args:
            df: Input DataFrame
            end_ts: Effective end (defaults to the open-ended sentinel)

        Returns:
            DataFrame with effective end date set
        """
        return df.withColumn(self.config.effective_end_column, lit(end_ts).cast("timestamp"))

    def set_current_flag(self, df: DataFrame, is_current: bool = True) -> DataFrame:
        """
        Set current flag for records.

        Args:
            df: Input DataFrame
            is_current: Value for current flag

        Returns:
            DataFrame with current flag set
        """
        return df.withColumn(self.config.is_current_column, lit(is_current))

    def set_audit_timestamps(self, df: DataFrame, batch_ts: datetime) -> DataFrame:
        """
        Set audit timestamps for records.

        Args:
            df: Input DataFrame
            batch_ts: Batch processing timestamp

        Returns:
            DataFrame with audit timestamps set
        """
        ts = lit(batch_ts).cast("timestamp")
        return (df
                .withColumn(self.config.created_ts_column, ts)
                .withColumn(self.config.modified_ts_column, ts))

    def generate_surrogate_keys(self, df: DataFrame, batch_ts: datetime) -> DataFrame:
        """
        Generate surrogate keys for new row versions.

        The key digests the business key values together with the version's
        effective start, so it is unique per version and stable when a batch
        is replayed. The parts are serialised as a JSON object, which keeps
        separators inside key values from making two keys digest alike.

        Args:
            df: Input DataFrame
            batch_ts: Batch processing timestamp

        Returns:
            DataFrame with surrogate keys added
        """
        key_parts = [col(c).cast("string").alias(c) for c in self.config.business_key_columns]
        key_parts.append(lit(batch_ts.isoformat()).alias(self.config.effective_start_column))

        return df.withColumn(
            self.config.surrogate_key_column,
            sha2(to_json(struct(*key_parts)), 256)
        )
