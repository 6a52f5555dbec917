"""Per-tenant provisioning passes."""

from dashspine.pipeline.orchestrator import (
    CancellationToken,
    CategoryReport,
    PassReport,
    PipelineOrchestrator,
    Stage,
)
from dashspine.pipeline.schema import SchemaScanner

__all__ = [
    "CancellationToken",
    "CategoryReport",
    "PassReport",
    "PipelineOrchestrator",
    "Stage",
    "SchemaScanner",
]
