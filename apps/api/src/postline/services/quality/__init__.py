from postline.services.quality.chunker import chunk_document
from postline.services.quality.formatter import format_post
from postline.services.quality.pipeline import (
    DEFAULT_POLICY,
    PipelinePolicy,
    process_document,
    run_batch_pipeline,
    run_quality_pipeline,
)
from postline.services.quality.types import PipelineResult, QualityIssue, QualityResult

__all__ = [
    "DEFAULT_POLICY",
    "PipelinePolicy",
    "PipelineResult",
    "QualityIssue",
    "QualityResult",
    "chunk_document",
    "format_post",
    "process_document",
    "run_batch_pipeline",
    "run_quality_pipeline",
]
