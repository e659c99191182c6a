"""
Duplicate suppression for staged source records.
"""

from typing import Tuple
from pyspark.sql import DataFrame
from pyspark.sql.functions import col, countDistinct, lit, row_number
from pyspark.sql.window import Window
import logging

from ..common.config import DimensionConfig, DeduplicationStrategy
from ..common.utils import add_error_columns

logger = logging.getLogger(__name__)


class SourceDeduplicator:
    """Reduces staged source records to at most one per natural key."""

    def __init__(self, config: DimensionConfig):
        """
        Initialize SourceDeduplicator with configuration.

        Args:
            config: Dimension configuration
        """
        self.config = config

    def deduplicate(self, df: DataFrame) -> Tuple[DataFrame, DataFrame]:
        """
        Deduplicate hashed source records by natural key.

        With an ordering column the latest (or earliest) record per key wins.
        Without one, records with identical fingerprints collapse and keys
        whose records disagree are rejected, since no winner can be chosen.

        Args:
            df: Source DataFrame with the SCD hash column

        Returns:
            Tuple of (deduplicated records, rejected records)
        """
        order_column = self.config.dedup_order_column
        if order_column and order_column in df.columns:
            return self._keep_by_order(df, order_column), self._empty_rejects(df)

        if order_column:
            logger.warning(f"Ordering column {order_column} not found, falling back to fingerprint deduplication")

        return self._collapse_identical(df)

    def _keep_by_order(self, df: DataFrame, order_column: str) -> DataFrame:
        if self.config.deduplication_strategy == DeduplicationStrategy.EARLIEST.value:
            ordering = col(order_column).asc_nulls_last()
        else:
            ordering = col(order_column).desc_nulls_last()

        # Hash as tie-breaker keeps the choice deterministic
        window_spec = (Window.partitionBy(*self.config.business_key_columns)
                       .orderBy(ordering, col(self.config.scd_hash_column)))

        deduplicated = (df.withColumn("_row_num", row_number().over(window_spec))
                        .filter(col("_row_num") == 1)
                        .drop("_row_num"))

        logger.info(f"Deduplicated source by {order_column} using '{self.config.deduplication_strategy}' strategy")
        return deduplicated

    def _collapse_identical(self, df: DataFrame) -> Tuple[DataFrame, DataFrame]:
        keys = self.config.business_key_columns
        collapsed = df.dropDuplicates(keys + [self.config.scd_hash_column])

        conflicting_keys = (collapsed
                            .groupBy(*keys)
                            .agg(countDistinct(col(self.config.scd_hash_column)).alias("_versions"))
                            .filter(col("_versions") > 1)
                            .select(*keys))

        deduplicated = collapsed.join(conflicting_keys, keys, "left_anti")
        rejected = (add_error_columns(df.join(conflicting_keys, keys, "left_semi"),
                                      self.config.error_flag_column,
                                      self.config.error_message_column)
                    .withColumn(self.config.error_flag_column, lit("Y"))
                    .withColumn(self.config.error_message_column,
                                lit("Conflicting duplicate source records for business key")))

        conflict_count = conflicting_keys.count()
        if conflict_count > 0:
            logger.warning(f"Rejected {conflict_count} business keys with conflicting duplicate source records")

        return deduplicated, rejected

    def _empty_rejects(self, df: DataFrame) -> DataFrame:
        return add_error_columns(df.limit(0), self.config.error_flag_column,
                                 self.config.error_message_column)
