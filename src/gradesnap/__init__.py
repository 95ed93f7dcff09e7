"""gradesnap - grade snapshot cache and course classification engine."""

__version__ = "0.1.0"

from .models import Course, CourseSnapshot, GradeSource, PageContext, RawGrade
from .config import GradesnapConfig
from .store import SnapshotStore
from .pipeline import PopulationPipeline

__all__ = [
    "Course", "CourseSnapshot", "GradeSource", "PageContext", "RawGrade",
    "GradesnapConfig", "SnapshotStore", "PopulationPipeline",
    "__version__",
]
