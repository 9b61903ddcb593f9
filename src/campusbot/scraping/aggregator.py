"""
Aggregator Module - Category-based fetch across platform sessions.
==================================================================

The single entry point used by the chat layer:

    result = await aggregator.scrape_by_category("notice", campus="신촌")

Steps per call:
1. Cache lookup by "{category}:{campus}:{count}"
2. Route the category to one or more platform sessions
3. Fan out concurrently; each platform's outcome is captured separately
4. Merge courses by id, de-duplicate the rest, truncate to count
5. Write the result through to the cache

One failing platform yields a partial result; only a total failure raises.
"""

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

import httpx

from campusbot.scraping.cache import ExpiringCache
from campusbot.scraping.fetcher import PageFetcher
from campusbot.scraping.platforms import (
    CoursePlatformSession,
    CourseSiteSession,
    LibrarySession,
    PlatformSession,
    PortalSession,
)
from campusbot.scraping.retry import RetryPolicy
from campusbot.shared.config import Settings, get_settings
from campusbot.shared.errors import AggregationError, CampusBotError, ConfigurationError
from campusbot.shared.logging import get_logger
from campusbot.shared.schemas import (
    AggregatedResult,
    Category,
    CourseRecord,
    Credentials,
    Platform,
    PlatformOutcome,
    ReservationResult,
)
from campusbot.shared.utils import make_cache_key

logger = get_logger(__name__)

DEFAULT_CAMPUS = "신촌"
DEFAULT_COUNT = 20

DEFAULT_ROUTES: dict[str, tuple[str, ...]] = {
    Category.COURSE.value: ("course_platform", "portal"),
    Category.ASSIGNMENT.value: ("course_platform", "portal"),
    Category.NOTICE.value: ("course_platform", "portal"),
    Category.ACADEMIC.value: ("portal",),
    Category.SCHOLARSHIP.value: ("portal",),
    Category.CAREER.value: ("portal",),
    Category.LIBRARY.value: ("library",),
    Category.STUDYROOM.value: ("library",),
    Category.FACILITIES.value: ("library", "portal"),
}

DEFAULT_CATEGORY_TTL: dict[str, float] = {
    Category.COURSE.value: 600.0,
    Category.ASSIGNMENT.value: 600.0,
    Category.LIBRARY.value: 60.0,
    Category.STUDYROOM.value: 60.0,
}

PLATFORM_PRIORITY = {
    Platform.COURSE_PLATFORM.value: 0,
    Platform.PORTAL.value: 1,
    Platform.LIBRARY.value: 2,
}

SESSION_TYPES: dict[str, type[PlatformSession]] = {
    Platform.COURSE_PLATFORM.value: CoursePlatformSession,
    Platform.PORTAL.value: PortalSession,
    Platform.LIBRARY.value: LibrarySession,
}

COURSE_TEXT_FIELDS = ("name", "instructor", "semester", "url", "department")


# ─────────────────────────────────────────────────────────────────────────────
# Merge
# ─────────────────────────────────────────────────────────────────────────────


def _merge_order(course: CourseRecord) -> tuple[int, str]:
    canonical = json.dumps(course.model_dump(mode="json"), sort_keys=True, ensure_ascii=False)
    return PLATFORM_PRIORITY.get(course.platform, len(PLATFORM_PRIORITY)), canonical


def merge_course_pair(primary: CourseRecord, secondary: CourseRecord) -> CourseRecord:
    """
    Fill-in merge of two records for the same course.

    The primary keeps every non-empty field; the longer description wins;
    schedule slots are unioned in order.
    """
    merged = primary.model_dump()
    other = secondary.model_dump()

    for name in COURSE_TEXT_FIELDS:
        if not merged[name]:
            merged[name] = other[name]
    if len(other["description"]) > len(merged["description"]):
        merged["description"] = other["description"]
    merged["schedule"] = merged["schedule"] + [
        slot for slot in other["schedule"] if slot not in merged["schedule"]
    ]
    if not merged["credits"]:
        merged["credits"] = other["credits"]

    return CourseRecord(**merged)


def merge_courses(courses: Iterable[CourseRecord]) -> list[CourseRecord]:
    """
    Merge course records sharing an id.

    Records are put in platform-priority order first, so the result does not
    depend on the order platforms answered in, and merging is idempotent.

    Example:
        >>> merged = merge_courses(learnus_courses + portal_courses)
    """
    by_id: dict[str, CourseRecord] = {}
    for course in sorted(courses, key=_merge_order):
        existing = by_id.get(course.id)
        by_id[course.id] = course if existing is None else merge_course_pair(existing, course)
    return list(by_id.values())


def combine_records(records: Iterable[Any]) -> list[Any]:
    """Merge courses across platforms; keep the first of any other (kind, platform, id)."""
    records = list(records)
    courses = [r for r in records if isinstance(r, CourseRecord)]
    merged = iter(merge_courses(courses))

    combined: list[Any] = []
    seen: set[tuple[str, str, str]] = set()
    courses_placed = False
    for record in records:
        if isinstance(record, CourseRecord):
            if not courses_placed:
                combined.extend(merged)
                courses_placed = True
            continue
        record_id = getattr(record, "id", None)
        if record_id is not None:
            identity = (record.kind, str(record.platform), record_id)
            if identity in seen:
                continue
            seen.add(identity)
        combined.append(record)
    return combined


# ─────────────────────────────────────────────────────────────────────────────
# Aggregator
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class AggregatorStats:
    """Counters kept across calls."""

    requests: int = 0
    cache_hits: int = 0
    partial_results: int = 0
    total_failures: int = 0


@dataclass
class _PlatformRun:
    platform: str
    records: Optional[list[Any]] = None
    error: Optional[CampusBotError] = None


class Aggregator:
    """
    Orchestrates platform sessions and the cache.

    Example:
        >>> async with create_aggregator() as aggregator:
        ...     result = await aggregator.scrape_by_category("course")
        ...     print(len(result.records), result.partial)
    """

    def __init__(
        self,
        sessions: Mapping[str, PlatformSession],
        cache: ExpiringCache,
        credentials: Optional[Credentials] = None,
        routes: Optional[Mapping[str, Iterable[str]]] = None,
        category_ttl: Optional[Mapping[str, float]] = None,
        snapshot_path: Optional[Path] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            sessions: Platform name -> session
            cache: Shared expiring cache
            credentials: Login credentials for every platform
            routes: Category -> platform names (merged over the defaults)
            category_ttl: Category -> TTL seconds (missing ones use the cache default)
            snapshot_path: Cache snapshot loaded on start and saved on close
        """
        self.sessions = dict(sessions)
        self.cache = cache
        self.credentials = credentials
        self.routes: dict[str, tuple[str, ...]] = dict(DEFAULT_ROUTES)
        for category, platforms in (routes or {}).items():
            self.routes[category] = tuple(platforms)
        self.category_ttl = dict(DEFAULT_CATEGORY_TTL if category_ttl is None else category_ttl)
        self.snapshot_path = snapshot_path
        self.stats = AggregatorStats()

    # ─────────────────────────────────────────────────────────────────────────
    # Routing
    # ─────────────────────────────────────────────────────────────────────────

    def resolve(self, category: Union[Category, str]) -> list[PlatformSession]:
        """
        Resolve the sessions serving a category.

        Raises:
            ConfigurationError: Unknown category, unknown platform or missing handler
        """
        try:
            key = Category(category).value
        except ValueError:
            raise ConfigurationError(
                f"Unknown category '{category}'",
                details={"known": [c.value for c in Category]},
            ) from None

        names = self.routes.get(key, ())
        if not names:
            raise ConfigurationError(f"No platforms configured for category '{key}'")

        sessions = []
        for name in names:
            session = self.sessions.get(name)
            if session is None:
                raise ConfigurationError(
                    f"Category '{key}' routes to unavailable platform '{name}'",
                    details={"category": key, "platform": name},
                )
            if not session.supports(key):
                raise ConfigurationError(
                    f"Platform '{name}' cannot serve category '{key}'",
                    details={"category": key, "platform": name},
                )
            sessions.append(session)
        return sessions

    def ttl_for(self, category: str) -> Optional[float]:
        return self.category_ttl.get(category)

    def _cached_result(self, key: str) -> Optional[AggregatedResult]:
        value = self.cache.get(key)
        if value is None:
            return None
        if not isinstance(value, AggregatedResult):
            value = AggregatedResult.model_validate(value)
        return value.model_copy(update={"from_cache": True})

    # ─────────────────────────────────────────────────────────────────────────
    # Fan-out
    # ─────────────────────────────────────────────────────────────────────────

    async def _run_platform(
        self, session: PlatformSession, category: str, campus: str, count: int
    ) -> _PlatformRun:
        try:
            await session.ensure_authenticated(self.credentials)
            records = await session.fetch_category(category, campus, count)
            return _PlatformRun(platform=session.name, records=records)
        except CampusBotError as e:
            logger.warning(f"{session.name} failed for '{category}': {e}")
            return _PlatformRun(platform=session.name, error=e)

    async def scrape_by_category(
        self,
        category: Union[Category, str],
        campus: str = DEFAULT_CAMPUS,
        count: int = DEFAULT_COUNT,
        force_refresh: bool = False,
        use_cache: bool = True,
    ) -> AggregatedResult:
        """
        Fetch records for a category from every platform that serves it.

        Args:
            category: Category key (course, notice, studyroom, ...)
            campus: Campus scope passed to list pages
            count: Maximum number of records returned
            force_refresh: Skip the cache read (the result is still written)
            use_cache: Read and write the cache at all

        Returns:
            AggregatedResult annotated with one outcome per platform

        Raises:
            ConfigurationError: Unknown category or unroutable platform
            AggregationError: Every platform failed
        """
        if count < 1:
            raise ConfigurationError(f"count must be positive, got {count}")

        sessions = self.resolve(category)
        key_category = Category(category).value
        cache_key = make_cache_key(key_category, campus, count)
        self.stats.requests += 1

        if use_cache and not force_refresh:
            cached = self._cached_result(cache_key)
            if cached is not None:
                self.stats.cache_hits += 1
                logger.debug(f"Cache hit: {cache_key}")
                return cached

        runs = await asyncio.gather(
            *(self._run_platform(s, key_category, campus, count) for s in sessions)
        )

        failures = {run.platform: run.error for run in runs if run.error is not None}
        if len(failures) == len(runs):
            self.stats.total_failures += 1
            raise AggregationError(key_category, failures)

        outcomes: dict[str, PlatformOutcome] = {}
        collected: list[Any] = []
        for run in runs:
            if run.error is not None:
                outcomes[run.platform] = PlatformOutcome(
                    success=False, error=str(run.error), error_type=type(run.error).__name__
                )
            else:
                records = run.records or []
                outcomes[run.platform] = PlatformOutcome(success=True, count=len(records))
                collected.extend(records)

        result = AggregatedResult(
            category=key_category,
            campus=campus,
            count=count,
            records=combine_records(collected)[:count],
            platforms=outcomes,
        )
        if result.partial:
            self.stats.partial_results += 1
            logger.info(f"Partial result for '{key_category}': {result.failed_platforms} failed")

        if use_cache:
            self.cache.set(cache_key, result, ttl=self.ttl_for(key_category))
        return result

    async def get_course_details(self, course_id: str, use_cache: bool = True) -> CourseRecord:
        """
        Course details from every course site, merged into one record.

        Raises:
            ConfigurationError: No course site session configured
            AggregationError: Every course site failed
        """
        cache_key = make_cache_key("course_detail", course_id)
        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                self.stats.cache_hits += 1
                return cached if isinstance(cached, CourseRecord) else CourseRecord.model_validate(cached)

        sessions = [s for s in self.sessions.values() if isinstance(s, CourseSiteSession)]
        if not sessions:
            raise ConfigurationError("No course site sessions configured")

        async def fetch(session: CourseSiteSession) -> _PlatformRun:
            try:
                await session.ensure_authenticated(self.credentials)
                return _PlatformRun(session.name, [await session.get_course_details(course_id)])
            except CampusBotError as e:
                logger.warning(f"{session.name} course details failed for {course_id}: {e}")
                return _PlatformRun(session.name, error=e)

        runs = await asyncio.gather(*(fetch(s) for s in sessions))
        records = [record for run in runs for record in (run.records or [])]
        if not records:
            raise AggregationError(
                "course_detail", {run.platform: run.error for run in runs if run.error}
            )

        course = merge_courses(records)[0]
        if use_cache:
            self.cache.set(cache_key, course, ttl=self.ttl_for(Category.COURSE.value))
        return course

    # ─────────────────────────────────────────────────────────────────────────
    # Reservations
    # ─────────────────────────────────────────────────────────────────────────

    def _library(self) -> LibrarySession:
        session = self.sessions.get(Platform.LIBRARY.value)
        if not isinstance(session, LibrarySession):
            raise ConfigurationError("No library session configured")
        return session

    async def reserve_room(
        self,
        room_id: str,
        date: str,
        start_time: str,
        end_time: str,
        purpose: str = "학습",
    ) -> ReservationResult:
        """Reserve a room and drop cached room listings."""
        library = self._library()
        await library.ensure_authenticated(self.credentials)
        result = await library.reserve_room(room_id, date, start_time, end_time, purpose)
        self.cache.delete_matching(f"{Category.STUDYROOM.value}:*")
        return result

    async def cancel_reservation(self, reservation_id: str) -> ReservationResult:
        """Cancel a reservation and drop cached room listings."""
        library = self._library()
        await library.ensure_authenticated(self.credentials)
        result = await library.cancel_reservation(reservation_id)
        self.cache.delete_matching(f"{Category.STUDYROOM.value}:*")
        return result

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        """Drop every cached entry, or those whose key matches a glob pattern."""
        if pattern:
            return self.cache.delete_matching(pattern)
        removed = len(self.cache)
        self.cache.clear()
        return removed

    async def start(self) -> None:
        if self.snapshot_path:
            self.cache.load_snapshot(self.snapshot_path)
        self.cache.start()

    async def close(self) -> None:
        """
        Save the snapshot, stop the cache sweep, log out and close every session.

        Every session is torn down even when the snapshot write or another
        session fails; the failure is raised once teardown finishes.
        """
        try:
            if self.snapshot_path:
                self.cache.save_snapshot(self.snapshot_path)
        finally:
            try:
                await self.cache.aclose()
            finally:
                await self._close_sessions()

    async def _close_sessions(self) -> None:
        first_error: Optional[Exception] = None
        for name, session in self.sessions.items():
            try:
                try:
                    await session.logout()
                finally:
                    await session.close()
            except Exception as e:
                logger.warning(f"Closing {name} session failed: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    async def __aenter__(self) -> "Aggregator":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()


# ─────────────────────────────────────────────────────────────────────────────
# Composition root
# ─────────────────────────────────────────────────────────────────────────────


def create_aggregator(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    credentials: Optional[Credentials] = None,
) -> Aggregator:
    """
    Build an Aggregator with every session, fetcher and cache from settings.

    Args:
        settings: Settings instance (uses get_settings() if None)
        transport: Optional httpx transport shared by every fetcher
        credentials: Overrides the credentials found in settings
    """
    settings = settings or get_settings()
    scraping = settings.scraping
    retry = RetryPolicy(
        max_attempts=scraping.max_retries,
        backoff=scraping.retry_backoff,
        max_wait=scraping.retry_max_wait,
    )

    sessions: dict[str, PlatformSession] = {}
    for name, session_type in SESSION_TYPES.items():
        platform_config = settings.get_platform(name)
        if platform_config is None:
            logger.warning(f"Platform '{name}' is not configured; skipping")
            continue
        fetcher = PageFetcher(
            headers=scraping.headers,
            timeout=scraping.timeout,
            max_redirects=scraping.max_redirects,
            transport=transport,
        )
        sessions[name] = session_type(platform_config, fetcher=fetcher, retry=retry)

    cache = ExpiringCache(
        default_ttl=settings.cache.default_ttl,
        max_size=settings.cache.max_size,
        cleanup_interval=settings.cache.cleanup_interval,
    )
    snapshot = settings.cache.snapshot_file
    return Aggregator(
        sessions=sessions,
        cache=cache,
        credentials=credentials or settings.credentials,
        routes=settings.aggregation.routes,
        category_ttl=settings.cache.category_ttl,
        snapshot_path=Path(snapshot) if snapshot else None,
    )
