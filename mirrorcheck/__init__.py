"""Hash-based verification and repair of mirrored directory trees."""

from .filters import is_excluded, iter_candidates
from .mirror_tool import MirrorTool, MirrorToolError
from .models import Candidate, FileRecord, MirrorConfig, ProgressEvent, RunSummary, Status
from .pipeline import MirrorValidator
from .pool import ValidationPool, validate_candidate
from .recovery import CopyStrategy, RecoveryEngine, default_strategies, escape_long_path
from .report import is_settled, load_resume, merge
from .revalidate import Revalidator

__all__ = [
    "Candidate",
    "CopyStrategy",
    "FileRecord",
    "MirrorConfig",
    "MirrorTool",
    "MirrorToolError",
    "MirrorValidator",
    "ProgressEvent",
    "RecoveryEngine",
    "Revalidator",
    "RunSummary",
    "Status",
    "ValidationPool",
    "default_strategies",
    "escape_long_path",
    "is_excluded",
    "is_settled",
    "iter_candidates",
    "load_resume",
    "merge",
    "validate_candidate",
]
