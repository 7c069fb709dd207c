"""ETL pipeline engine.

Provides extraction, transformation, and loading of records between a
source adapter and a target adapter.
"""

from .pipeline import Orchestrator, PipelineResult
from .stages.extract import ExtractStage
from .stages.load import LoadStage
from .stages.transform import TransformStage, apply_transformations

__all__ = [
    "Orchestrator",
    "PipelineResult",
    "ExtractStage",
    "TransformStage",
    "LoadStage",
    "apply_transformations",
]
