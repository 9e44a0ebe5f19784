"""Convert documents, web pages and media into an organized Markdown archive."""

__version__ = "0.1.0"

from .archive import ArchiveBuilder
from .batch import BatchCoordinator, BatchOutcome, build_coordinator
from .config import AppConfig, load_config
from .core import ConversionService
from .errors import NoteConverterError
from .jobs import Job, JobManager, JobStatus
from .models import ConversionOptions, ConversionRequest, ConversionResult, ItemType

__all__ = [
    "AppConfig",
    "ArchiveBuilder",
    "BatchCoordinator",
    "BatchOutcome",
    "ConversionOptions",
    "ConversionRequest",
    "ConversionResult",
    "ConversionService",
    "ItemType",
    "Job",
    "JobManager",
    "JobStatus",
    "NoteConverterError",
    "__version__",
    "load_config",
    "build_coordinator",
]
