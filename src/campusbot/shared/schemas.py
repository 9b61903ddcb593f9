"""
Schemas Module - Pydantic data models for the application.
==========================================================

Defines all data contracts used across the scraping core:
- Record models produced by the HTML extractor
- Library resource aggregate
- Aggregation result and per-platform outcome
- Credentials and reservation results
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, SecretStr


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class Platform(str, Enum):
    """External sites scraped by the core."""

    COURSE_PLATFORM = "course_platform"
    PORTAL = "portal"
    LIBRARY = "library"


class Category(str, Enum):
    """User-facing topic keys understood by the aggregator."""

    COURSE = "course"
    ASSIGNMENT = "assignment"
    NOTICE = "notice"
    ACADEMIC = "academic"
    SCHOLARSHIP = "scholarship"
    CAREER = "career"
    LIBRARY = "library"
    STUDYROOM = "studyroom"
    FACILITIES = "facilities"


class AssignmentStatus(str, Enum):
    """Submission state of an assignment."""

    NOT_SUBMITTED = "not_submitted"
    SUBMITTED = "submitted"
    GRADED = "graded"


class LibraryStatusValue(str, Enum):
    """Operating state of a library facility."""

    OPEN = "open"
    CLOSED = "closed"
    MAINTENANCE = "maintenance"


class AuthState(str, Enum):
    """Authentication state of a platform session."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


# Records are immutable once extracted; merges build new instances.
RECORD_CONFIG = {"frozen": True, "use_enum_values": True}


# ─────────────────────────────────────────────────────────────────────────────
# Record Models
# ─────────────────────────────────────────────────────────────────────────────


class AttachmentRecord(BaseModel):
    """A file attached to a notice or assignment."""

    id: str = Field(..., description="Attachment identifier")
    name: str = Field(default="", description="Display file name")
    url: str = Field(default="", description="Download URL")
    size: int = Field(default=0, ge=0, description="Size in bytes (0 when unknown)")
    mime_type: str = Field(
        default="application/octet-stream", description="Explicit or extension-derived type"
    )

    model_config = RECORD_CONFIG


class CourseRecord(BaseModel):
    """
    A course as listed by the course platform or the portal.

    Two records with the same id from different platforms describe the
    same course and are combined with a fill-in merge.
    """

    kind: Literal["course"] = "course"
    id: str = Field(..., description="Course identifier")
    name: str = Field(default="", description="Course name")
    instructor: str = Field(default="", description="Instructor name")
    semester: str = Field(default="", description="Semester label")
    url: str = Field(default="", description="Course page URL")
    description: str = Field(default="", description="Course description")
    credits: int = Field(default=0, ge=0, description="Credit count")
    schedule: list[str] = Field(default_factory=list, description="Free-text schedule slots")
    department: str = Field(default="", description="Department name")
    platform: Platform = Field(..., description="Source platform")

    model_config = RECORD_CONFIG


class NoticeRecord(BaseModel):
    """An announcement posted on a course, portal board, or library page."""

    kind: Literal["notice"] = "notice"
    id: str = Field(..., description="Notice identifier (unique per platform)")
    title: str = Field(default="", description="Notice title")
    body: str = Field(default="", description="Notice body text")
    author: str = Field(default="", description="Author name")
    published_at: Optional[datetime] = Field(default=None, description="Publication date")
    important: bool = Field(default=False, description="Pinned/important flag")
    views: int = Field(default=0, ge=0, description="View count")
    attachments: list[AttachmentRecord] = Field(default_factory=list)
    board: str = Field(default="", description="Notice board the item was listed on")
    platform: Platform = Field(..., description="Source platform")

    model_config = RECORD_CONFIG


class AssignmentRecord(BaseModel):
    """An assignment in a course. due_at >= starts_at is expected, not enforced."""

    kind: Literal["assignment"] = "assignment"
    id: str = Field(..., description="Assignment identifier")
    title: str = Field(default="", description="Assignment title")
    description: str = Field(default="", description="Assignment description")
    starts_at: Optional[datetime] = Field(default=None, description="Open date")
    due_at: Optional[datetime] = Field(default=None, description="Due date")
    status: AssignmentStatus = Field(default=AssignmentStatus.NOT_SUBMITTED)
    max_score: float = Field(default=0.0, ge=0, description="Maximum score")
    attachments: list[AttachmentRecord] = Field(default_factory=list)
    course_id: str = Field(default="", description="Owning course id")
    platform: Platform = Field(..., description="Source platform")

    model_config = RECORD_CONFIG


class RoomScheduleSlot(BaseModel):
    """One booked slot of a study room."""

    day: str = Field(default="")
    start_time: str = Field(default="")
    end_time: str = Field(default="")
    purpose: str = Field(default="")
    organizer: Optional[str] = Field(default=None)

    model_config = RECORD_CONFIG


class RoomRecord(BaseModel):
    """A bookable library room."""

    kind: Literal["room"] = "room"
    id: str = Field(..., description="Room identifier")
    name: str = Field(default="", description="Room name")
    capacity: int = Field(default=0, ge=0, description="Seat count")
    available: bool = Field(default=False, description="Currently bookable")
    location: str = Field(default="", description="Building/floor")
    facilities: list[str] = Field(default_factory=list, description="Unique facility names")
    schedule: list[RoomScheduleSlot] = Field(default_factory=list)
    platform: Platform = Field(default=Platform.LIBRARY)

    model_config = RECORD_CONFIG


# ─────────────────────────────────────────────────────────────────────────────
# Library Resource
# ─────────────────────────────────────────────────────────────────────────────


class LibraryStatus(BaseModel):
    """Occupancy of one library room type."""

    id: str
    room_type: str = ""
    capacity: int = Field(default=0, ge=0)
    available: int = Field(default=0, ge=0)
    status: LibraryStatusValue = LibraryStatusValue.CLOSED

    model_config = RECORD_CONFIG


class TimeRange(BaseModel):
    """Opening and closing time, as shown on the page (e.g. '09:00')."""

    open: str = ""
    close: str = ""

    model_config = RECORD_CONFIG


class LibraryHours(BaseModel):
    """Opening hours of one library facility."""

    facility: str = ""
    weekday: TimeRange = Field(default_factory=TimeRange)
    weekend: TimeRange = Field(default_factory=TimeRange)
    holiday: TimeRange = Field(default_factory=TimeRange)

    model_config = RECORD_CONFIG


class LibraryResource(BaseModel):
    """Snapshot of the library status page."""

    kind: Literal["library"] = "library"
    statuses: list[LibraryStatus] = Field(default_factory=list)
    hours: list[LibraryHours] = Field(default_factory=list)
    notices: list[NoticeRecord] = Field(default_factory=list)
    platform: Platform = Field(default=Platform.LIBRARY)

    model_config = RECORD_CONFIG


Record = Annotated[
    Union[CourseRecord, NoticeRecord, AssignmentRecord, RoomRecord, LibraryResource],
    Field(discriminator="kind"),
]


# ─────────────────────────────────────────────────────────────────────────────
# Aggregation Models
# ─────────────────────────────────────────────────────────────────────────────


class PlatformOutcome(BaseModel):
    """Result of one platform's contribution to an aggregated query."""

    success: bool = Field(..., description="Whether the platform call succeeded")
    count: int = Field(default=0, description="Records contributed")
    error: Optional[str] = Field(default=None, description="Failure description")
    error_type: Optional[str] = Field(default=None, description="Failure class name")


class AggregatedResult(BaseModel):
    """
    Records for one category query, annotated per platform.

    A result with at least one failed platform is still a success;
    `partial` tells the caller some sources are missing.
    """

    category: str = Field(..., description="Requested category")
    campus: str = Field(..., description="Campus scope")
    count: int = Field(..., description="Requested maximum number of records")
    records: list[Record] = Field(default_factory=list)
    platforms: dict[str, PlatformOutcome] = Field(default_factory=dict)
    from_cache: bool = Field(default=False)
    fetched_at: datetime = Field(default_factory=datetime.now)

    @property
    def partial(self) -> bool:
        """True when some, but not all, platforms failed."""
        return any(not outcome.success for outcome in self.platforms.values())

    @property
    def failed_platforms(self) -> list[str]:
        """Names of platforms that failed."""
        return [name for name, outcome in self.platforms.items() if not outcome.success]


class ReservationResult(BaseModel):
    """Outcome of a room reservation or cancellation."""

    success: bool
    reservation_id: Optional[str] = None
    message: str = ""


class Credentials(BaseModel):
    """Login credentials for the university single sign-on."""

    username: str
    password: SecretStr
