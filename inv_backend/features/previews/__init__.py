"""
Preview feature: generation, restoration and hue caching for catalog files.
"""

from .classifier import PreviewClassifier
from .cooldown import Cooldown
from .dependencies import FilenameReferenceResolver, NullDependencyResolver
from .generator import PreviewGenerator, PreviewRequest
from .hue import HueService, compute_hue
from .materializer import ArchiveExtractor, ExtractionContext, MaterializationCache
from .progress import LoggingProgress, ProgressReporter
from .renderer import PreviewRenderer, PreviewResult, resize_image
from .restore import restore_shipped_previews
from .results import apply_preview_result, derive_shipped_preview, mark_provided, preview_path_for
from .scheduler import PreviewScheduler
from .service import PreviewService

__all__ = [
    "ArchiveExtractor",
    "Cooldown",
    "ExtractionContext",
    "FilenameReferenceResolver",
    "HueService",
    "LoggingProgress",
    "MaterializationCache",
    "NullDependencyResolver",
    "PreviewClassifier",
    "PreviewGenerator",
    "PreviewRenderer",
    "PreviewRequest",
    "PreviewResult",
    "PreviewScheduler",
    "PreviewService",
    "ProgressReporter",
    "apply_preview_result",
    "compute_hue",
    "derive_shipped_preview",
    "mark_provided",
    "preview_path_for",
    "resize_image",
    "restore_shipped_previews",
]
