"""
Main dimensional key resolver for fact tables.
"""

from typing import Any, Dict
from pyspark.sql import Column, DataFrame
from pyspark.sql.functions import coalesce, col, lit
import logging
import time

from ..common.config import KeyResolutionConfig
from ..common.exceptions import KeyResolutionError
from ..common.utils import build_key_condition
from ..scd_type2.dimension_store import DimensionStore

logger = logging.getLogger(__name__)

RESOLVED_KEY_COLUMN = "_resolved_key"
VALID_FROM_COLUMN = "_valid_from"
VALID_TO_COLUMN = "_valid_to"


class DimensionalKeyResolver:
    """Resolves dimensional keys for fact tables."""

    def __init__(self, config: KeyResolutionConfig, store: DimensionStore):
        """
        Initialize DimensionalKeyResolver with configuration and dimension store.

        Args:
            config: Key resolution configuration
            store: Store of the dimension the keys are looked up in
        """
        self.config = config
        self.store = store

        logger.info(f"Initialized DimensionalKeyResolver for dimension: {config.dimension_entity}")

    def resolve_current_keys(self, fact_df: DataFrame) -> DataFrame:
        """
        Attach the surrogate key of the current dimension row.

        Args:
            fact_df: Fact DataFrame carrying the business key columns

        Returns:
            Fact DataFrame with the fact key column added
        """
        self._validate_input(fact_df)
        logger.info(f"Resolving current {self.config.dimension_entity} keys")

        dimension = self.store.read_current().select(
            *[col(c) for c in self.config.business_key_columns],
            col(self.config.surrogate_key_column).alias(RESOLVED_KEY_COLUMN)
        )
        return self._attach_keys(fact_df, dimension)

    def resolve_keys_as_of(self, fact_df: DataFrame, business_ts_column: str) -> DataFrame:
        """
        Attach the surrogate key of the version valid at each fact's business time.

        A version is valid over [effective start, effective end), so a fact
        stamped exactly at a version boundary resolves to the newer version.

        Args:
            fact_df: Fact DataFrame carrying the business key columns
            business_ts_column: Column holding the fact's business timestamp

        Returns:
            Fact DataFrame with the fact key column added
        """
        self._validate_input(fact_df)
        if business_ts_column not in fact_df.columns:
            raise KeyResolutionError(
                f"Business timestamp column '{business_ts_column}' not found in fact table", "validate_input"
            )

        logger.info(f"Resolving {self.config.dimension_entity} keys as of {business_ts_column}")

        dimension = self.store.read_all().select(
            *[col(c) for c in self.config.business_key_columns],
            col(self.config.surrogate_key_column).alias(RESOLVED_KEY_COLUMN),
            col(self.config.effective_start_column).alias(VALID_FROM_COLUMN),
            col(self.config.effective_end_column).alias(VALID_TO_COLUMN)
        )
        business_ts = col(f"fact.{business_ts_column}")
        within_validity = ((business_ts >= col(f"dim.{VALID_FROM_COLUMN}")) &
                           (business_ts < col(f"dim.{VALID_TO_COLUMN}")))

        return self._attach_keys(fact_df, dimension, within_validity)

    def _attach_keys(self, fact_df: DataFrame, dimension: DataFrame,
                     extra_condition: Column = None) -> DataFrame:
        start_time = time.time()
        fact_key = self.config.fact_key_column

        try:
            condition = build_key_condition(self.config.business_key_columns, "fact", "dim")
            if extra_condition is not None:
                condition = condition & extra_condition

            resolved_df = (fact_df.drop(fact_key).alias("fact")
                           .join(dimension.alias("dim"), condition, "left")
                           .select(col("fact.*"),
                                   coalesce(col(f"dim.{RESOLVED_KEY_COLUMN}"),
                                            lit(self.config.unknown_key_value)).alias(fact_key)))
        except Exception as e:
            logger.error(f"Key resolution failed: {str(e)}")
            raise KeyResolutionError(f"Key resolution failed: {str(e)}", "join") from e

        validation_results = self.validate_resolution_results(fact_df, resolved_df)
        if validation_results["unresolved_records"] > 0:
            logger.warning(
                f"{validation_results['unresolved_records']} fact records got the unknown "
                f"{self.config.dimension_entity} key {self.config.unknown_key_value}"
            )

        logger.info(f"Key resolution completed in {time.time() - start_time:.2f} seconds")
        return resolved_df

    def _validate_input(self, fact_df: DataFrame) -> None:
        missing_columns = set(self.config.business_key_columns) - set(fact_df.columns)
        if missing_columns:
            raise KeyResolutionError(
                f"Business key columns not found in fact table: {sorted(missing_columns)}", "validate_input"
            )

    def validate_resolution_results(self, fact_df: DataFrame,
                                    resolved_df: DataFrame) -> Dict[str, Any]:
        """
        Validate key resolution results.

        Args:
            fact_df: Original fact DataFrame
            resolved_df: Resolved DataFrame

        Returns:
            Dictionary with validation results

        Raises:
            KeyResolutionError: If resolution changed the number of fact records
        """
        original_count = fact_df.count()
        resolved_count = resolved_df.count()

        if resolved_count != original_count:
            raise KeyResolutionError(
                f"Data loss during key resolution: {original_count} -> {resolved_count}", "validate_results"
            )

        unresolved_count = resolved_df.filter(
            col(self.config.fact_key_column) == lit(self.config.unknown_key_value)
        ).count()

        resolution_rate = (original_count - unresolved_count) / original_count if original_count > 0 else 0

        validation_results = {
            "original_records": original_count,
            "resolved_records": resolved_count,
            "unresolved_records": unresolved_count,
            "resolution_rate": resolution_rate
        }

        logger.info(f"Key resolution validation: {validation_results}")
        return validation_results
