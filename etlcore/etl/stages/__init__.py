"""ETL pipeline stages.

Each stage handles a specific part of a pipeline run:
- Extract: Page through a source adapter
- Transform: Apply declarative field operations
- Load: Deliver batches to a target adapter
"""

from .extract import ExtractStage
from .transform import TransformStage
from .load import LoadStage

__all__ = [
    "ExtractStage",
    "TransformStage",
    "LoadStage",
]
