"""
Extractor Module - Turn server-rendered HTML into typed records.
================================================================

Each record kind is described by a declarative RecordSpec: where its
repeated blocks live, which container must be present, and a table of
FieldRules (field name -> sub-selector -> decoder). HtmlExtractor walks
the table; it holds no per-kind parsing code beyond a few finalizers.

Selectors may list comma-separated alternatives to cover the markup of
every platform. Missing optional fields fall back to type defaults; a
ParseError is raised only when the root container of a kind is absent.
"""

import itertools
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Union

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, ValidationError

from campusbot.scraping.urls import build_url
from campusbot.shared.errors import ParseError
from campusbot.shared.logging import get_logger
from campusbot.shared.schemas import (
    AssignmentRecord,
    AssignmentStatus,
    AttachmentRecord,
    CourseRecord,
    LibraryHours,
    LibraryResource,
    LibraryStatus,
    LibraryStatusValue,
    NoticeRecord,
    Platform,
    RoomRecord,
    RoomScheduleSlot,
)
from campusbot.shared.utils import (
    generate_record_id,
    guess_mime_type,
    normalize_whitespace,
    parse_datetime,
    parse_file_size,
    parse_float,
    parse_int,
)

logger = get_logger(__name__)


class RecordKind(str, Enum):
    """Record kinds understood by the extractor."""

    COURSE_LIST = "course_list"
    COURSE_DETAIL = "course_detail"
    NOTICE = "notice"
    ASSIGNMENT = "assignment"
    ROOM = "room"
    ROOM_SCHEDULE = "room_schedule"
    LIBRARY_STATUS = "library_status"


# ─────────────────────────────────────────────────────────────────────────────
# Decoders
# ─────────────────────────────────────────────────────────────────────────────


def text(value: Optional[str]) -> str:
    return normalize_whitespace(value)


def optional_text(value: Optional[str]) -> Optional[str]:
    return normalize_whitespace(value) or None


def integer(value: Optional[str]) -> int:
    return parse_int(value)


def number(value: Optional[str]) -> float:
    return parse_float(value)


def date(value: Optional[str]) -> Optional[datetime]:
    return parse_datetime(value)


def file_size(value: Optional[str]) -> int:
    return parse_file_size(value)


def unique(values: list[str]) -> list[str]:
    """Drop duplicates, keeping first-seen order."""
    return list(dict.fromkeys(v for v in values if v))


def flag(*class_names: str) -> Callable[[Optional[str]], bool]:
    """Build a decoder that is True when a class attribute carries any of the names."""
    wanted = {name.lower() for name in class_names}

    def decode(value: Optional[str]) -> bool:
        return bool(wanted & set((value or "").lower().split()))

    return decode


def vocabulary(
    table: Iterable[tuple[Enum, tuple[str, ...]]], default: Enum
) -> Callable[[Optional[str]], str]:
    """
    Build a decoder that maps text onto an enum by substring match.

    Entries are checked in order, so more specific phrases ("not submitted")
    must come before the phrases they contain ("submitted").
    """
    entries = [(member, tuple(word.lower() for word in words)) for member, words in table]

    def decode(value: Optional[str]) -> str:
        lowered = (value or "").lower()
        for member, words in entries:
            if any(word in lowered for word in words):
                return member.value
        return default.value

    return decode


assignment_status = vocabulary(
    [
        (AssignmentStatus.NOT_SUBMITTED, ("not submitted", "unsubmitted", "미제출")),
        (AssignmentStatus.SUBMITTED, ("not graded", "ungraded", "미채점")),
        (AssignmentStatus.GRADED, ("graded", "채점")),
        (AssignmentStatus.SUBMITTED, ("submitted", "제출")),
    ],
    default=AssignmentStatus.NOT_SUBMITTED,
)

library_status = vocabulary(
    [
        (LibraryStatusValue.MAINTENANCE, ("maintenance", "점검", "보수")),
        (LibraryStatusValue.CLOSED, ("closed", "마감", "휴관", "종료", "이용불가")),
        (LibraryStatusValue.OPEN, ("open", "운영", "이용가능", "개방")),
    ],
    default=LibraryStatusValue.CLOSED,
)


# ─────────────────────────────────────────────────────────────────────────────
# Element Readers
# ─────────────────────────────────────────────────────────────────────────────


def element_text(element: Tag) -> str:
    return element.get_text(" ", strip=True)


def schedule_slot(element: Tag) -> str:
    """Render a structured slot as '{day} {time} ({location})', else its text."""
    day = element.select_one(".day")
    if day is None:
        return normalize_whitespace(element_text(element))
    slot_time = element.select_one(".time")
    location = element.select_one(".location")
    rendered = " ".join(
        part for part in (element_text(day), element_text(slot_time) if slot_time else "") if part
    )
    if location is not None and element_text(location):
        rendered = f"{rendered} ({element_text(location)})"
    return normalize_whitespace(rendered)


def time_range(element: Tag) -> dict[str, str]:
    """Read '.open'/'.close' children, or split '09:00-22:00' / '09:00~22:00'."""
    opens = element.select_one(".open, .open-time")
    closes = element.select_one(".close, .close-time")
    if opens is not None or closes is not None:
        return {
            "open": element_text(opens) if opens is not None else "",
            "close": element_text(closes) if closes is not None else "",
        }
    raw = element_text(element).replace("~", "-")
    start, _, end = raw.partition("-")
    return {"open": start.strip(), "close": end.strip()}


# ─────────────────────────────────────────────────────────────────────────────
# Declarative Tables
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldRule:
    """
    How to read one field out of a block.

    Attributes:
        name: Model field name
        selector: Comma-separated CSS alternatives ("" means the block itself)
        decoder: Converts the raw value into the field value
        attr: Read this attribute (comma-separated alternatives) instead of text
        many: Collect every match into a list
        reader: Turns a matched element into its raw value (default: its text)
        nested: Build a list of sub-records from every match
    """

    name: str
    selector: str = ""
    decoder: Callable[[Any], Any] = text
    attr: Optional[str] = None
    many: bool = False
    reader: Optional[Callable[[Tag], Any]] = None
    nested: Optional["RecordSpec"] = None


@dataclass(frozen=True)
class RecordSpec:
    """
    Markup signature of one record kind.

    Attributes:
        model: Pydantic model built from the decoded fields
        block: Selector of the repeated blocks
        fields: Field rules applied to each block
        root: Container that must exist; "" means none is required
        id_namespace: Prefix for synthetic ids ("" for id-less models)
        single: Return only the first block instead of a list
        finalize: Hook applied to (block, values) before the model is built
    """

    model: type[BaseModel]
    block: str
    fields: tuple[FieldRule, ...]
    root: str = ""
    id_namespace: str = ""
    single: bool = False
    finalize: Optional[Callable[[Tag, dict[str, Any]], dict[str, Any]]] = None


def _finalize_attachment(block: Tag, values: dict[str, Any]) -> dict[str, Any]:
    values["mime_type"] = guess_mime_type(values.get("name", ""), values.get("mime_type", ""))
    return values


def _finalize_assignment(block: Tag, values: dict[str, Any]) -> dict[str, Any]:
    starts_at, due_at = values.get("starts_at"), values.get("due_at")
    if starts_at and due_at and due_at < starts_at:
        logger.warning(f"Assignment '{values.get('title', '')}' is due before it opens")
    return values


def _finalize_course_detail(block: Tag, values: dict[str, Any]) -> dict[str, Any]:
    description = values.get("description", "")
    objectives = [element_text(li) for li in block.select(".course-objectives li")]
    objectives = [item for item in objectives if item]
    if objectives:
        description += "\n\n강의 목표:\n" + "\n".join(f"- {item}" for item in objectives)
    syllabus = block.select_one(".course-syllabus")
    if syllabus is not None:
        syllabus_text = normalize_whitespace(syllabus.get_text("\n", strip=True))
        if syllabus_text:
            description += "\n\n강의계획서:\n" + syllabus_text
    values["description"] = description.strip()
    return values


ATTACHMENT_SPEC = RecordSpec(
    model=AttachmentRecord,
    block=".attachment-item, .attachment",
    id_namespace="attachment",
    finalize=_finalize_attachment,
    fields=(
        FieldRule("id", attr="data-id, data-attachment-id"),
        FieldRule("name", ".attachment-name, .filename"),
        FieldRule("url", ".attachment-link, .download-link, a", attr="href"),
        FieldRule("size", ".attachment-size, .filesize", decoder=file_size),
        FieldRule("mime_type", ".attachment-type, .filetype"),
    ),
)

COURSE_LIST_SPEC = RecordSpec(
    model=CourseRecord,
    block=".course-list-item, .course-item",
    id_namespace="course",
    fields=(
        FieldRule("id", attr="data-courseid, data-course-id"),
        FieldRule("name", ".course-title, .course-name"),
        FieldRule("instructor", ".professor-name, .instructor"),
        FieldRule("semester", ".semester-info, .semester"),
        FieldRule("url", ".course-link, a", attr="href"),
        FieldRule("description", ".course-description"),
        FieldRule("credits", ".course-credits, .credits", decoder=integer),
        FieldRule("department", ".department-name, .department"),
        FieldRule(
            "schedule", ".course-schedule li, .schedule li", many=True, reader=schedule_slot
        ),
    ),
)

COURSE_DETAIL_SPEC = RecordSpec(
    model=CourseRecord,
    block=".course-details",
    root=".course-details",
    id_namespace="course",
    single=True,
    finalize=_finalize_course_detail,
    fields=(
        FieldRule("id", attr="data-course-id, data-courseid"),
        FieldRule("name", ".course-name, .course-title"),
        FieldRule("instructor", ".professor-name, .instructor"),
        FieldRule("semester", ".semester-info, .semester"),
        FieldRule("url", ".course-link", attr="href"),
        FieldRule("description", ".course-description"),
        FieldRule("credits", ".credits, .course-credits", decoder=integer),
        FieldRule("department", ".department, .department-name"),
        FieldRule("schedule", ".schedule li, .course-schedule li", many=True, reader=schedule_slot),
    ),
)

NOTICE_SPEC = RecordSpec(
    model=NoticeRecord,
    block=".notice-item",
    root=".notice-list, .notices, .board-list",
    id_namespace="notice",
    fields=(
        FieldRule("id", attr="data-id, data-notice-id"),
        FieldRule("title", ".notice-title"),
        FieldRule("body", ".notice-content, .content"),
        FieldRule("author", ".notice-author, .author"),
        FieldRule("published_at", ".notice-date, .date", decoder=date),
        FieldRule("important", attr="class", decoder=flag("important", "important-notice")),
        FieldRule("views", ".notice-views, .views", decoder=integer),
        FieldRule("attachments", ".attachment-item, .attachment", nested=ATTACHMENT_SPEC),
    ),
)

ASSIGNMENT_SPEC = RecordSpec(
    model=AssignmentRecord,
    block=".assignment-item",
    root=".assignment-list, .assignments",
    id_namespace="assignment",
    finalize=_finalize_assignment,
    fields=(
        FieldRule("id", attr="data-id, data-assignment-id"),
        FieldRule("title", ".assignment-title"),
        FieldRule("description", ".assignment-description, .description"),
        FieldRule("starts_at", ".start-date", decoder=date),
        FieldRule("due_at", ".due-date", decoder=date),
        FieldRule("status", ".status", decoder=assignment_status),
        FieldRule("max_score", ".max-score", decoder=number),
        FieldRule("attachments", ".attachment-item, .attachment", nested=ATTACHMENT_SPEC),
    ),
)

SCHEDULE_SLOT_FIELDS = (
    FieldRule("day", ".day"),
    FieldRule("start_time", ".start-time"),
    FieldRule("end_time", ".end-time"),
    FieldRule("purpose", ".purpose"),
    FieldRule("organizer", ".organizer", decoder=optional_text),
)

ROOM_SLOT_SPEC = RecordSpec(
    model=RoomScheduleSlot, block=".schedule-item", fields=SCHEDULE_SLOT_FIELDS
)

ROOM_SPEC = RecordSpec(
    model=RoomRecord,
    block=".room-item",
    root=".room-list, .rooms",
    id_namespace="room",
    fields=(
        FieldRule("id", attr="data-room-id, data-id"),
        FieldRule("name", ".room-name"),
        FieldRule("capacity", ".capacity", decoder=integer),
        FieldRule("available", attr="class", decoder=flag("available")),
        FieldRule("location", ".location"),
        FieldRule("facilities", ".facilities li", many=True, decoder=unique),
        FieldRule("schedule", ".schedule-item", nested=ROOM_SLOT_SPEC),
    ),
)

ROOM_SCHEDULE_SPEC = RecordSpec(
    model=RoomScheduleSlot,
    block=".schedule-row",
    root=".schedule-table, .room-schedule, .schedule-list",
    fields=SCHEDULE_SLOT_FIELDS,
)

LIBRARY_STATUS_ENTRY_SPEC = RecordSpec(
    model=LibraryStatus,
    block=".status-item",
    id_namespace="status",
    fields=(
        FieldRule("id", attr="data-id"),
        FieldRule("room_type", ".room-type, .name"),
        FieldRule("capacity", ".capacity, .total", decoder=integer),
        FieldRule("available", ".available-count, .available", decoder=integer),
        FieldRule("status", ".status", decoder=library_status),
    ),
)

LIBRARY_HOURS_SPEC = RecordSpec(
    model=LibraryHours,
    block=".hours-item",
    fields=(
        FieldRule("facility", ".facility, .facility-name"),
        FieldRule("weekday", ".weekday", decoder=dict, reader=time_range),
        FieldRule("weekend", ".weekend", decoder=dict, reader=time_range),
        FieldRule("holiday", ".holiday", decoder=dict, reader=time_range),
    ),
)

LIBRARY_SPEC = RecordSpec(
    model=LibraryResource,
    block=".library-status, .status-board",
    root=".library-status, .status-board",
    single=True,
    fields=(
        FieldRule("statuses", ".status-item", nested=LIBRARY_STATUS_ENTRY_SPEC),
        FieldRule("hours", ".hours-item", nested=LIBRARY_HOURS_SPEC),
        FieldRule("notices", ".notice-item", nested=NOTICE_SPEC),
    ),
)

RECORD_SPECS: dict[RecordKind, RecordSpec] = {
    RecordKind.COURSE_LIST: COURSE_LIST_SPEC,
    RecordKind.COURSE_DETAIL: COURSE_DETAIL_SPEC,
    RecordKind.NOTICE: NOTICE_SPEC,
    RecordKind.ASSIGNMENT: ASSIGNMENT_SPEC,
    RecordKind.ROOM: ROOM_SPEC,
    RecordKind.ROOM_SCHEDULE: ROOM_SCHEDULE_SPEC,
    RecordKind.LIBRARY_STATUS: LIBRARY_SPEC,
}


# ─────────────────────────────────────────────────────────────────────────────
# Extractor Class
# ─────────────────────────────────────────────────────────────────────────────


# Process-wide so id-less records from separate extractions never collide on merge.
_ID_ORDINALS = itertools.count(1)


@dataclass
class _ExtractionRun:
    """Per-call state: one timestamp stamped into every synthetic id."""

    timestamp_ms: int

    def next_id(self, namespace: str, platform: Optional[str] = None) -> str:
        if platform:
            namespace = f"{namespace}-{platform}"
        return generate_record_id(namespace, next(_ID_ORDINALS), timestamp_ms=self.timestamp_ms)


class HtmlExtractor:
    """
    Table-driven HTML to record extractor.

    Example:
        >>> extractor = HtmlExtractor(base_url="https://portal.yonsei.ac.kr")
        >>> notices = extractor.extract(html, "notice", Platform.PORTAL)
        >>> print(notices[0].title)
    """

    def __init__(
        self,
        base_url: str = "",
        specs: Optional[dict[RecordKind, RecordSpec]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the extractor.

        Args:
            base_url: Base used to absolutize relative links
            specs: Custom record tables (uses defaults if None)
            clock: Time source for synthetic ids
        """
        self.base_url = base_url
        self.specs = specs or RECORD_SPECS
        self.clock = clock

    def _create_soup(self, html: str) -> BeautifulSoup:
        return BeautifulSoup(html or "", "lxml")

    def extract(
        self,
        html: str,
        kind: Union[RecordKind, str],
        platform: Optional[Union[Platform, str]] = None,
        **scope: Any,
    ) -> Union[list[Any], Any]:
        """
        Extract records of one kind from a document.

        Args:
            html: Raw page markup
            kind: Record kind (see RecordKind)
            platform: Source platform tag stamped on every record
            **scope: Values filling empty fields (e.g. course_id, board, id)

        Returns:
            A list of records, or a single record for single-block kinds

        Raises:
            ParseError: If the root container of the kind is absent
        """
        try:
            kind = RecordKind(kind)
        except ValueError:
            raise ParseError(f"Unknown record kind: {kind}") from None
        spec = self.specs[kind]
        soup = self._create_soup(html)

        if spec.root and soup.select_one(spec.root) is None and soup.select_one(spec.block) is None:
            raise ParseError(
                f"No '{kind.value}' container found in document",
                details={"kind": kind.value, "root": spec.root},
            )

        run = _ExtractionRun(timestamp_ms=int(self.clock() * 1000))
        platform_value = Platform(platform).value if platform else None
        blocks = soup.select(spec.block)

        if spec.single:
            return self._build(spec, blocks[0], run, platform_value, scope)

        records = [self._build(spec, block, run, platform_value, scope) for block in blocks]
        logger.debug(f"Extracted {len(records)} {kind.value} record(s)")
        return records

    def extract_csrf_token(self, html: str, field_name: str = "_csrf") -> str:
        """Read the hidden CSRF input of a login form ("" when absent)."""
        soup = self._create_soup(html)
        element = soup.select_one(f'input[name="{field_name}"]')
        if element is None:
            return ""
        return str(element.get("value") or "")

    def has_marker(self, html: str, markers: Iterable[str]) -> bool:
        """Whether any marker phrase appears in the document."""
        body = html or ""
        return any(marker and marker in body for marker in markers)

    # ─────────────────────────────────────────────────────────────────────────
    # Table walking
    # ─────────────────────────────────────────────────────────────────────────

    def _read_attr(self, element: Tag, attr: str) -> str:
        for name in (a.strip() for a in attr.split(",")):
            value = element.get(name)
            if isinstance(value, list):
                value = " ".join(value)
            if value:
                return str(value)
        return ""

    def _matches(self, block: Tag, selector: str) -> list[Tag]:
        if not selector:
            return [block]
        for sel in (s.strip() for s in selector.split(",")):
            found = block.select(sel)
            if found:
                return found
        return []

    def _read_field(
        self,
        rule: FieldRule,
        block: Tag,
        run: _ExtractionRun,
        platform: Optional[str],
        scope: dict[str, Any],
    ) -> Any:
        matches = self._matches(block, rule.selector)

        if rule.nested is not None:
            return [self._build(rule.nested, el, run, platform, {}, as_dict=True) for el in matches]

        reader = rule.reader or element_text
        if rule.many:
            values = [reader(el) for el in matches]
            values = [normalize_whitespace(v) if isinstance(v, str) else v for v in values]
            values = [v for v in values if v]
            return rule.decoder(values) if rule.decoder is not text else values

        raw: Any = None
        for element in matches:
            raw = self._read_attr(element, rule.attr) if rule.attr else reader(element)
            if raw:
                break
        if rule.decoder is dict:
            return raw or {}
        return rule.decoder(raw)

    def _build(
        self,
        spec: RecordSpec,
        block: Tag,
        run: _ExtractionRun,
        platform: Optional[str],
        scope: dict[str, Any],
        as_dict: bool = False,
    ) -> Any:
        values: dict[str, Any] = {
            rule.name: self._read_field(rule, block, run, platform, scope) for rule in spec.fields
        }
        model_fields = spec.model.model_fields

        for key, value in scope.items():
            if key in model_fields and not values.get(key) and value is not None:
                values[key] = value
        if spec.id_namespace and not values.get("id"):
            values["id"] = run.next_id(spec.id_namespace, platform)
        if platform and "platform" in model_fields:
            values["platform"] = platform
        if values.get("url") and self.base_url:
            values["url"] = build_url(self.base_url, values["url"])
        if spec.finalize is not None:
            values = spec.finalize(block, values)

        if as_dict:
            return values
        try:
            return spec.model(**values)
        except ValidationError as e:
            raise ParseError(
                f"Malformed {spec.model.__name__} block: {e.error_count()} invalid field(s)",
                details={"errors": [err["loc"] for err in e.errors()]},
            ) from e
