"""
Main SCD Type 2 processor with clean separation of concerns.
"""

from datetime import datetime
from pyspark.sql import DataFrame, SparkSession
import logging
import time

from ..common.config import DimensionConfig, ProcessingMetrics, ValidationResult, ChangeType
from ..common.exceptions import DimensionalProcessingError, SCDProcessingError
from .hash_manager import HashManager
from .date_manager import DateManager
from .validators import SCDValidator
from .source_deduplicator import SourceDeduplicator
from .change_detector import ChangeDetector
from .history_closer import HistoryCloser
from .record_inserter import CurrentRowInserter
from .dimension_store import DimensionStore

logger = logging.getLogger(__name__)


class SCDProcessor:
    """Main SCD Type 2 processor with clean separation of concerns."""

    def __init__(self, config: DimensionConfig, spark: SparkSession, store: DimensionStore):
        """
        Initialize SCDProcessor with configuration, Spark session and store.

        Args:
            config: Dimension configuration
            spark: Spark session
            store: Storage of the target dimension table
        """
        self.config = config
        self.spark = spark
        self.store = store

        # Initialize components
        self.date_manager = DateManager(config)
        self.hash_manager = HashManager(config)
        self.validator = SCDValidator(config)
        self.deduplicator = SourceDeduplicator(config)
        self.change_detector = ChangeDetector(config)
        self.history_closer = HistoryCloser(config, self.date_manager)
        self.inserter = CurrentRowInserter(config, self.date_manager)

        self.rejected_records = None

        logger.info(f"Initialized SCDProcessor for {config.entity_type} -> {store.table_name}")

    def process_batch(self, source_df: DataFrame, batch_ts: datetime) -> ProcessingMetrics:
        """
        Apply one batch of staged source records to the dimension.

        Args:
            source_df: Staged source records for this entity
            batch_ts: Batch processing timestamp

        Returns:
            ProcessingMetrics: Processing metrics

        Raises:
            ValidationError: If the source is structurally unusable
            ConsistencyError: If the dimension history is inconsistent
            TransientError: If the write hit a retryable failure
            SCDProcessingError: For any other failure
        """
        cfg = self.config
        start_time = time.time()
        metrics = ProcessingMetrics()

        try:
            # Step 1: Validate input structure
            self.validator.require_valid_source(source_df)
            metrics.records_read = source_df.count()
            logger.info(f"Starting SCD processing of {metrics.records_read} {cfg.entity_type} records")

            # Step 2: Set aside records without a usable natural key
            valid_df, invalid_df = self.validator.split_invalid_records(source_df)

            # Step 3: Fingerprint and deduplicate
            hashed_df = self.hash_manager.compute_scd_hash(valid_df)
            deduplicated_df, duplicate_df = self.deduplicator.deduplicate(hashed_df)

            self.rejected_records = invalid_df.unionByName(
                duplicate_df.drop(cfg.scd_hash_column), allowMissingColumns=True
            )
            metrics.records_rejected = self.rejected_records.count()
            if metrics.records_rejected > 0:
                logger.warning(f"Rejected {metrics.records_rejected} {cfg.entity_type} source records")

            # Step 4: Read current rows from a pinned snapshot
            self.store.begin_snapshot()
            current_df = self.store.read_current()
            self.validator.validate_current_state(current_df)

            # Step 5: Classify
            change_plan = self.change_detector.detect_changes(deduplicated_df, current_df, batch_ts)
            counts = change_plan.counts()

            # Step 6: Build closures and inserts, then reconcile with the latest state
            closures = self.history_closer.build_closures(change_plan.changed_records, batch_ts)
            inserts = self.inserter.build_insert_rows(change_plan.records_to_insert, batch_ts)
            closures, inserts, already_closed = self.history_closer.reconcile(
                closures, inserts, self.store.read_latest_rows(closures), batch_ts
            )

            # Step 7: Commit both together
            rows_closed, rows_inserted = self.store.apply_changes(closures, inserts)

            metrics.new_records_created = counts[ChangeType.NEW.value]
            metrics.changed_records = counts[ChangeType.CHANGED.value] - already_closed
            metrics.records_unchanged = counts[ChangeType.UNCHANGED.value] + already_closed
            metrics.existing_records_closed = rows_closed
            metrics.records_inserted = rows_inserted
            metrics.processing_time_seconds = time.time() - start_time

            logger.info(f"SCD processing of {cfg.entity_type} completed. Metrics: {metrics.to_dict()}")
            return metrics

        except DimensionalProcessingError as e:
            logger.error(f"SCD processing of {cfg.entity_type} failed: {e.message}")
            raise
        except Exception as e:
            logger.error(f"SCD processing of {cfg.entity_type} failed: {str(e)}")
            raise SCDProcessingError(f"SCD processing failed: {str(e)}", "process_batch") from e

    def validate_table_history(self) -> ValidationResult:
        """
        Check the stored history against the SCD Type 2 invariants.

        Returns:
            ValidationResult listing every violated invariant
        """
        return self.validator.validate_history(self.store.read_all())

    def get_table_info(self) -> dict:
        """
        Get information about the target table.

        Returns:
            Dictionary with table information
        """
        return self.store.get_table_info()
