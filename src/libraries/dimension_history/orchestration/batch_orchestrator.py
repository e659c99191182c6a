"""
Batch orchestration of dimension loads and dependent fact stages.
"""

from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union
from pyspark.sql import SparkSession
import logging

import tenacity

from ..common.config import DimensionConfig, FactStageConfig, KeyResolutionConfig, PipelineConfig, ProcessingMode
from ..common.environment import EnvironmentResolver
from ..common.exceptions import ConfigurationError, DimensionalProcessingError, TransientError
from ..common.utils import utc_now
from ..key_resolution.key_resolver import DimensionalKeyResolver
from ..scd_type2.dimension_store import DimensionStore, create_delta_store
from ..scd_type2.scd_processor import SCDProcessor
from .audit_sink import AuditSink, DeltaAuditSink
from .execution_record import BatchExecutionRecord, EntityLoadResult, LoadStatus
from .source_reader import SourceExtractReader, StagingTableReader

logger = logging.getLogger(__name__)

StoreFactory = Callable[[DimensionConfig, str], DimensionStore]

UNEXPECTED_ERROR_CODE = "UNEXPECTED_ERROR"
CONFIGURATION_ERROR_CODE = "CONFIGURATION_ERROR"


@dataclass
class StageContext:
    """What a fact-stage loader gets to work with."""

    batch_id: str
    mode: ProcessingMode
    processing_ts: datetime
    spark: Optional[SparkSession]
    environment: EnvironmentResolver
    stores: Dict[str, DimensionStore] = field(default_factory=dict)

    def key_resolver(self, entity_type: str, **overrides) -> DimensionalKeyResolver:
        """
        Build a key resolver over one of the batch's dimensions.

        Args:
            entity_type: Dimension whose keys are resolved
            **overrides: KeyResolutionConfig fields to override

        Returns:
            DimensionalKeyResolver reading the dimension's store
        """
        if entity_type not in self.stores:
            raise ConfigurationError(f"Dimension {entity_type} is not part of this batch", "depends_on")
        store = self.stores[entity_type]
        return DimensionalKeyResolver(KeyResolutionConfig.for_dimension(store.config, **overrides), store)


class BatchOrchestrator:
    """Runs the dimension loads and fact stages of a batch in dependency order."""

    def __init__(self, pipeline: PipelineConfig, spark: Optional[SparkSession],
                 environment: EnvironmentResolver,
                 source_reader: SourceExtractReader = None,
                 audit_sink: AuditSink = None,
                 store_factory: StoreFactory = None):
        """
        Initialize BatchOrchestrator.

        Args:
            pipeline: Pipeline configuration
            spark: Spark session
            environment: Resolver for database and schema identifiers
            source_reader: Reader of staged extracts (staging tables by default)
            audit_sink: Destination of execution records (Delta execution log by default)
            store_factory: Builds the store of a dimension from its config and target table
        """
        self.pipeline = pipeline
        self.spark = spark
        self.environment = environment
        self.source_reader = source_reader or StagingTableReader(spark)
        self.audit_sink = audit_sink or DeltaAuditSink(spark, pipeline.audit_table)
        self.store_factory = store_factory or partial(create_delta_store, spark)

        self._stores: Dict[str, DimensionStore] = {}
        self._staging_tables: Dict[str, str] = {}

        logger.info(
            f"Initialized BatchOrchestrator with {len(pipeline.dimensions)} dimensions "
            f"and {len(pipeline.fact_stages)} fact stages"
        )

    def run_batch(self, batch_id: str, mode: Union[ProcessingMode, str] = ProcessingMode.FULL,
                  processing_ts: datetime = None) -> BatchExecutionRecord:
        """
        Run every enabled dimension load and fact stage of the pipeline.

        Args:
            batch_id: Batch identifier
            mode: FULL or INCREMENTAL
            processing_ts: Batch processing time (reused from an earlier run of the batch if omitted)

        Returns:
            The finalised BatchExecutionRecord
        """
        mode = ProcessingMode(mode)
        record = BatchExecutionRecord(batch_id=batch_id, mode=mode)
        record.start(self._resolve_processing_ts(batch_id, processing_ts))
        self.audit_sink.append_progress(record)
        logger.info(f"Starting batch {batch_id} ({mode.value}) at processing time {record.processing_ts}")

        try:
            for dimension in self.pipeline.dimensions:
                if dimension.enabled:
                    self._resolve_dimension(dimension)
        except ConfigurationError as e:
            logger.error(f"Batch {batch_id} aborted during table resolution: {e.message}")
            record.finalize(error_detail=e.message)
            self.audit_sink.append(record)
            return record

        dependencies = self.pipeline.dependencies()
        abort_detail = None

        for name in self.pipeline.execution_order():
            if abort_detail is not None:
                self._record(record, self._not_run(name, LoadStatus.BLOCKED, f"Batch aborted: {abort_detail}"))
                continue

            blockers = [d for d in dependencies[name]
                        if record.get_result(d) is not None
                        and record.get_result(d).status in (LoadStatus.FAILED, LoadStatus.BLOCKED)]
            if blockers:
                logger.warning(f"{name} is blocked by failed dependencies: {blockers}")
                self._record(record, self._not_run(
                    name, LoadStatus.BLOCKED, f"Blocked by failed dependencies: {blockers}"
                ))
                continue

            result = self._run_entity(name, batch_id, mode, record.processing_ts)
            self._record(record, result)

            if result.error_code == CONFIGURATION_ERROR_CODE:
                abort_detail = f"{name}: {result.error_detail}"

        status = record.finalize(error_detail=abort_detail)
        self.audit_sink.append(record)

        outcome = {name: s.value for name, s in record.statuses().items()}
        logger.info(f"Batch {batch_id} finished with status {status.value}: {outcome}")
        return record

    def load_entity(self, entity_type: str, batch_id: str,
                    mode: Union[ProcessingMode, str] = ProcessingMode.FULL,
                    processing_ts: datetime = None) -> EntityLoadResult:
        """
        Run a single dimension load or fact stage.

        The outcome is audited as a batch record of its own.

        Args:
            entity_type: Dimension entity type or fact stage name
            batch_id: Batch identifier
            mode: FULL or INCREMENTAL
            processing_ts: Batch processing time (reused from an earlier run of the batch if omitted)

        Returns:
            EntityLoadResult of the load
        """
        if self.pipeline.get_dimension(entity_type) is None and self.pipeline.get_fact_stage(entity_type) is None:
            raise ConfigurationError(f"Unknown entity or stage: {entity_type}", "entity_type")

        mode = ProcessingMode(mode)
        record = BatchExecutionRecord(batch_id=batch_id, mode=mode)
        record.start(self._resolve_processing_ts(batch_id, processing_ts))
        self.audit_sink.append_progress(record)

        result = self._run_entity(entity_type, batch_id, mode, record.processing_ts)
        self._record(record, result)

        abort_detail = result.error_detail if result.error_code == CONFIGURATION_ERROR_CODE else None
        record.finalize(error_detail=abort_detail)
        self.audit_sink.append(record)
        return result

    def _record(self, record: BatchExecutionRecord, result: EntityLoadResult) -> None:
        record.record_result(result)
        self.audit_sink.append_progress(record, result)

    def _resolve_processing_ts(self, batch_id: str, processing_ts: Optional[datetime]) -> datetime:
        if processing_ts is not None:
            return processing_ts

        previous = self.audit_sink.find_processing_ts(batch_id)
        if previous is not None:
            logger.info(f"Reusing processing time {previous} of earlier run of batch {batch_id}")
            return previous

        return utc_now()

    def _resolve_dimension(self, dimension: DimensionConfig) -> Tuple[DimensionStore, str]:
        name = dimension.entity_type
        if name not in self._stores:
            target = self.environment.qualified_table(dimension.schema_name, dimension.target_table)
            staging = self.environment.qualified_table(dimension.staging_schema, dimension.staging_table)
            self._stores[name] = self.store_factory(dimension, target)
            self._staging_tables[name] = staging
            logger.info(f"Resolved {name}: {staging} -> {target}")
        return self._stores[name], self._staging_tables[name]

    def _run_entity(self, name: str, batch_id: str, mode: ProcessingMode,
                    processing_ts: datetime) -> EntityLoadResult:
        dimension = self.pipeline.get_dimension(name)
        stage = self.pipeline.get_fact_stage(name)

        entity = dimension if dimension is not None else stage
        if not entity.enabled:
            logger.info(f"{name} is disabled, skipping")
            return self._not_run(name, LoadStatus.SKIPPED)

        result = EntityLoadResult(entity_type=name, started_at=utc_now())

        def attempt() -> Any:
            result.attempts += 1
            if dimension is not None:
                return self._load_dimension(dimension, batch_id, mode, processing_ts)
            return self._load_fact_stage(stage, batch_id, mode, processing_ts)

        try:
            counts = self._with_retry(name, attempt)
        except DimensionalProcessingError as e:
            logger.error(f"{name} failed after {result.attempts} attempt(s): {e.message}")
            result.status = LoadStatus.FAILED
            result.error_detail = e.message
            result.error_code = e.error_code
        except Exception as e:
            logger.exception(f"{name} failed with an unexpected error")
            result.status = LoadStatus.FAILED
            result.error_detail = str(e)
            result.error_code = UNEXPECTED_ERROR_CODE
        else:
            result.status = LoadStatus.SUCCEEDED
            result.rows_inserted = int(counts.get("rows_inserted", 0))
            result.rows_updated = int(counts.get("rows_updated", 0))
            result.rows_rejected = int(counts.get("rows_rejected", 0))
            result.rows_unchanged = int(counts.get("rows_unchanged", 0))
            logger.info(f"✅ {name} succeeded: {result.to_dict()}")

        result.ended_at = utc_now()
        return result

    def _load_dimension(self, dimension: DimensionConfig, batch_id: str, mode: ProcessingMode,
                        processing_ts: datetime) -> Dict[str, int]:
        store, staging_table = self._resolve_dimension(dimension)
        source_df = self.source_reader.read(dimension, staging_table, batch_id, mode)

        metrics = SCDProcessor(dimension, self.spark, store).process_batch(source_df, processing_ts)
        return {
            "rows_inserted": metrics.records_inserted,
            "rows_updated": metrics.existing_records_closed,
            "rows_rejected": metrics.records_rejected,
            "rows_unchanged": metrics.records_unchanged
        }

    def _load_fact_stage(self, stage: FactStageConfig, batch_id: str, mode: ProcessingMode,
                         processing_ts: datetime) -> Mapping[str, int]:
        context = StageContext(
            batch_id=batch_id,
            mode=mode,
            processing_ts=processing_ts,
            spark=self.spark,
            environment=self.environment,
            stores={d.entity_type: self._resolve_dimension(d)[0]
                    for d in self.pipeline.dimensions if d.enabled}
        )
        return stage.loader(context) or {}

    def _with_retry(self, name: str, operation: Callable[[], Any]) -> Any:
        max_attempts = self.pipeline.max_retries + 1
        backoff = self.pipeline.retry_backoff_seconds

        def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
            """Log retry attempts."""
            exception = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
                name,
                retry_state.attempt_number,
                max_attempts,
                exception,
                retry_state.next_action.sleep if retry_state.next_action else 0,
            )

        retrying = tenacity.Retrying(
            stop=tenacity.stop_after_attempt(max_attempts),
            wait=tenacity.wait_exponential(multiplier=backoff, min=backoff),
            retry=tenacity.retry_if_exception_type(TransientError),
            before_sleep=before_sleep_handler,
            reraise=True,
        )
        return retrying(operation)

    @staticmethod
    def _not_run(name: str, status: LoadStatus, detail: str = None) -> EntityLoadResult:
        now = utc_now()
        return EntityLoadResult(entity_type=name, status=status, error_detail=detail,
                                started_at=now, ended_at=now)
