"""
Records shared by the planning engines — plain dataclasses, no I/O.
"""

from dataclasses import asdict, dataclass, field

LETTER_GRADES = ("A", "B", "C", "D", "F")

# Target percent required for each desired letter.
LETTER_TO_PERCENT = {"A": 0.90, "B": 0.80, "C": 0.70, "D": 0.60, "F": 0.0}
DEFAULT_TARGET_PERCENT = 0.90

GRADE_POINTS = {"A": 4.0, "B": 3.0, "C": 2.0, "D": 1.0, "F": 0.0}

WEIGHTED = "WEIGHTED"
POINTS = "POINTS"
GRADING_METHODS = (WEIGHTED, POINTS)

CAREER = "CAREER"
YEAR = "YEAR"
SEMESTER = "SEMESTER"
SCOPES = (CAREER, YEAR, SEMESTER)


@dataclass
class AssignmentInput:
    id: str
    name: str
    max_points: float
    is_extra_credit: bool = False
    is_graded: bool = False
    earned_points: float | None = None
    expected_points: float | None = None   # forecast, only used while ungraded

    @property
    def graded(self) -> bool:
        return self.earned_points is not None


@dataclass
class CategoryInput:
    id: str
    name: str
    weight_percent: float = 0.0
    drop_lowest: int = 0
    assignments: list[AssignmentInput] = field(default_factory=list)


@dataclass
class CoursePlanInput:
    id: str
    name: str
    desired_letter_grade: str = "A"
    grading_method: str = WEIGHTED
    categories: list[CategoryInput] = field(default_factory=list)


@dataclass
class CategoryPlan:
    id: str
    name: str
    weight: float                          # normalized 0-1
    actual_percent: float | None
    projected_percent: float | None


@dataclass
class AssignmentRequirement:
    id: str
    name: str
    max_points: float
    required_points: float


@dataclass
class CoursePlanResult:
    target_percent: float
    actual_percent: float | None
    projected_percent: float | None
    achievable: bool
    reason: str | None
    covered_weight: float
    remaining_weight: float
    categories: list[CategoryPlan]
    requirements: list[AssignmentRequirement]
    dropped_assignment_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AllocationCourse:
    """One course as seen by the GPA allocation engine."""
    id: str
    credits: float
    desired_letter_grade: str = "A"
    actual_letter_grade: str | None = None
    is_completed: bool = False


@dataclass
class AllocationResult:
    assignments: dict[str, str]
    max_achievable_gpa: float | None
    gpa_shortfall: float | None

    @property
    def feasible(self) -> bool:
        return self.gpa_shortfall is None

    def to_dict(self) -> dict:
        return asdict(self)
