"""Index module - incremental semantic indexing engine.

This module provides:
- ContentCache: path -> content hash map and scan progress, debounced atomic persistence
- EmbeddingBatcher: token-bounded batching with rate-limit aware retry
- IndexingStateManager: Standby / Indexing / Indexed / Error with validated transitions
- IndexingPipeline: embed, store and record changed files
- CodeIndexOrchestrator: initial scan, failure-rate policy, watcher lifecycle
- CodeIndexManager / ManagerRegistry: per-workspace wiring

Scanner, FileWatcher and VectorStore are protocols in `codeindex.index.interfaces`.
"""

from codeindex.index.cache import ContentCache, IndexingProgress
from codeindex.index.debounce import DebouncedWriter
from codeindex.index.events import (
    BatchProcessingSummary,
    BatchProgressUpdate,
    Disposable,
    EventEmitter,
)
from codeindex.index.interfaces import (
    EmbeddingBatchResult,
    EmbeddingProvider,
    EmbeddingUsage,
    FileWatcher,
    Scanner,
    ScanResult,
    VectorPoint,
    VectorStore,
)
from codeindex.index.manager import CodeIndexManager, CodeIndexServices, ManagerRegistry
from codeindex.index.orchestrator import (
    BatchFailure,
    CodeIndexOrchestrator,
    FailureKind,
    FailurePolicy,
    ScanOutcome,
    ScanVerdict,
    evaluate_scan,
)
from codeindex.index.pipeline import (
    CodeBlock,
    IndexingPipeline,
    PipelineScanner,
    PipelineStats,
    SourceFile,
    content_hash,
    create_pipeline,
)
from codeindex.index.state import IndexingState, IndexingStateManager, IndexingStatus

__all__ = [
    # Cache
    "ContentCache",
    "DebouncedWriter",
    "IndexingProgress",
    # Events
    "BatchProcessingSummary",
    "BatchProgressUpdate",
    "Disposable",
    "EventEmitter",
    # Interfaces
    "EmbeddingBatchResult",
    "EmbeddingProvider",
    "EmbeddingUsage",
    "FileWatcher",
    "ScanResult",
    "Scanner",
    "VectorPoint",
    "VectorStore",
    # State
    "IndexingState",
    "IndexingStateManager",
    "IndexingStatus",
    # Pipeline
    "CodeBlock",
    "IndexingPipeline",
    "PipelineScanner",
    "PipelineStats",
    "SourceFile",
    "content_hash",
    "create_pipeline",
    # Orchestration
    "BatchFailure",
    "CodeIndexManager",
    "CodeIndexOrchestrator",
    "CodeIndexServices",
    "FailureKind",
    "FailurePolicy",
    "ManagerRegistry",
    "ScanOutcome",
    "ScanVerdict",
    "evaluate_scan",
]
