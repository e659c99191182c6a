"""
Batch orchestration modules.
"""

from .batch_orchestrator import BatchOrchestrator, StageContext
from .execution_record import BatchExecutionRecord, BatchStatus, EntityLoadResult, LoadStatus
from .audit_sink import AuditSink, InMemoryAuditSink, DeltaAuditSink
from .source_reader import SourceExtractReader, StagingTableReader, DataFrameSourceReader

__all__ = [
    "BatchOrchestrator",
    "StageContext",
    "BatchExecutionRecord",
    "BatchStatus",
    "EntityLoadResult",
    "LoadStatus",
    "AuditSink",
    "InMemoryAuditSink",
    "DeltaAuditSink",
    "SourceExtractReader",
    "StagingTableReader",
    "DataFrameSourceReader"
]
