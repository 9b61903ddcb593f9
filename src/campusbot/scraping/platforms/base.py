"""
Platform Session Base - Authenticated scraping session for one site.
====================================================================

A PlatformSession owns everything needed to talk to one external site:
its PageFetcher (and therefore its cookie jar), an HtmlExtractor, a
UrlBuilder, a RetryPolicy and its authentication state.

Error policy:
- Data operations check authentication before any network call
- 401/403 or a redirect onto the login page expires the session
- NetworkError, AuthenticationError and ParseError pass through
- Anything else raised while extracting is wrapped as ParseError
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import SecretStr

from campusbot.scraping.extractor import HtmlExtractor, RecordKind
from campusbot.scraping.fetcher import FetchedPage, PageFetcher
from campusbot.scraping.retry import RetryPolicy
from campusbot.scraping.urls import UrlBuilder
from campusbot.shared.config import PlatformConfig
from campusbot.shared.errors import (
    AuthenticationError,
    CampusBotError,
    ConfigurationError,
    NetworkError,
    ParseError,
)
from campusbot.shared.logging import get_logger
from campusbot.shared.schemas import (
    AssignmentRecord,
    AttachmentRecord,
    AuthState,
    Category,
    CourseRecord,
    Credentials,
    NoticeRecord,
    Platform,
)

logger = get_logger(__name__)

CategoryHandler = Callable[..., Awaitable[list[Any]]]

AUTH_FAILURE_STATUSES = (401, 403)


class PlatformSession(ABC):
    """
    Abstract authenticated session for one platform.

    Subclasses declare their platform tag and which categories they serve.
    """

    platform: Platform

    def __init__(
        self,
        config: PlatformConfig,
        fetcher: Optional[PageFetcher] = None,
        retry: Optional[RetryPolicy] = None,
        extractor: Optional[HtmlExtractor] = None,
    ):
        """
        Initialize the session.

        Args:
            config: Base URL, login/logout paths and login markers
            fetcher: HTTP client wrapper (one per session, owns cookies)
            retry: Retry policy for idempotent GETs
            extractor: HTML extractor (defaults to one bound to the base URL)
        """
        self.config = config
        self.urls = UrlBuilder(config.base_url)
        self.fetcher = fetcher or PageFetcher()
        self.retry = retry or RetryPolicy()
        self.extractor = extractor or HtmlExtractor(base_url=config.base_url)
        self.state = AuthState.UNAUTHENTICATED
        self._login_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return Platform(self.platform).value

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED

    # ─────────────────────────────────────────────────────────────────────────
    # Authentication
    # ─────────────────────────────────────────────────────────────────────────

    async def authenticate(self, username: str, password: Union[str, SecretStr]) -> bool:
        """
        Log in with the site's CSRF-protected form.

        Returns:
            True when the response carries a logged-in marker

        Raises:
            AuthenticationError: If the login exchange itself fails
        """
        if isinstance(password, SecretStr):
            password = password.get_secret_value()

        self.state = AuthState.AUTHENTICATING
        login_url = self.urls.url(self.config.login_path)
        try:
            login_page = await self.retry.call(self.fetcher.fetch_page, login_url)
            token = self.extractor.extract_csrf_token(login_page.body, self.config.csrf_field)
            response = await self.fetcher.submit_form(
                login_url,
                {"username": username, "password": password, self.config.csrf_field: token},
            )
        except Exception as e:
            self.state = AuthState.UNAUTHENTICATED
            reason = e.message if isinstance(e, CampusBotError) else str(e)
            raise AuthenticationError(
                f"Login to {self.name} failed: {reason}", details={"platform": self.name}
            ) from e

        if self.extractor.has_marker(response.body, self.config.logged_in_markers):
            self.state = AuthState.AUTHENTICATED
            logger.info(f"Authenticated with {self.name}")
            return True

        self.state = AuthState.UNAUTHENTICATED
        logger.warning(f"Login to {self.name} was rejected")
        return False

    async def ensure_authenticated(self, credentials: Optional[Credentials]) -> None:
        """
        Log in unless already authenticated; concurrent callers share one login.

        Raises:
            AuthenticationError: No credentials, rejected login, or failed exchange
        """
        if self.is_authenticated:
            return
        async with self._login_lock:
            if self.is_authenticated:
                return
            if credentials is None:
                raise AuthenticationError(
                    f"No credentials available for {self.name}",
                    details={"platform": self.name},
                )
            if not await self.authenticate(credentials.username, credentials.password):
                raise AuthenticationError(
                    f"Login to {self.name} was rejected", details={"platform": self.name}
                )

    def _require_auth(self) -> None:
        if not self.is_authenticated:
            raise AuthenticationError(
                f"{self.name} session is not authenticated", details={"platform": self.name}
            )

    def _expire(self, reason: str) -> AuthenticationError:
        self.state = AuthState.UNAUTHENTICATED
        logger.warning(f"{self.name} session expired: {reason}")
        return AuthenticationError(
            f"{self.name} session expired: {reason}", details={"platform": self.name}
        )

    async def logout(self) -> None:
        """Best-effort logout; the session always ends unauthenticated with no cookies."""
        try:
            if self.is_authenticated:
                await self.fetcher.fetch_page(self.urls.url(self.config.logout_path))
        except CampusBotError as e:
            logger.debug(f"Logout from {self.name} failed: {e}")
        finally:
            self.state = AuthState.UNAUTHENTICATED
            self.fetcher.clear_cookies()

    # ─────────────────────────────────────────────────────────────────────────
    # Request helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _check_auth_response(self, error: NetworkError) -> None:
        if error.status_code in AUTH_FAILURE_STATUSES:
            raise self._expire(f"HTTP {error.status_code}") from error

    async def _get(self, url: str) -> FetchedPage:
        """Authenticated, retried GET."""
        self._require_auth()
        try:
            page = await self.retry.call(self.fetcher.fetch_page, url)
        except NetworkError as e:
            self._check_auth_response(e)
            raise
        if self.urls.is_same_path(page.url, self.config.login_path):
            raise self._expire("redirected to login page")
        return page

    async def _post(self, url: str, fields: dict[str, Any]) -> FetchedPage:
        """Authenticated form POST; never retried."""
        self._require_auth()
        try:
            page = await self.fetcher.submit_form(url, fields)
        except NetworkError as e:
            self._check_auth_response(e)
            raise
        if self.urls.is_same_path(page.url, self.config.login_path):
            raise self._expire("redirected to login page")
        return page

    async def _scrape(self, url: str, kind: RecordKind, **scope: Any) -> Any:
        """GET a page and extract records of one kind from it."""
        page = await self._get(url)
        try:
            return self.extractor.extract(page.body, kind, self.platform, **scope)
        except CampusBotError:
            raise
        except Exception as e:
            raise ParseError(
                f"Unexpected failure extracting {RecordKind(kind).value} from {self.name}: {e}"
            ) from e

    async def download_attachment(self, attachment: AttachmentRecord) -> bytes:
        """Fetch the bytes of an attachment with this session's cookies."""
        self._require_auth()
        url = self.urls.url(attachment.url)
        try:
            return await self.retry.call(self.fetcher.fetch_binary, url)
        except NetworkError as e:
            self._check_auth_response(e)
            raise

    # ─────────────────────────────────────────────────────────────────────────
    # Category dispatch
    # ─────────────────────────────────────────────────────────────────────────

    @abstractmethod
    def category_handlers(self) -> dict[str, CategoryHandler]:
        """Map category values to coroutine functions taking (campus, count)."""

    def supports(self, category: Union[Category, str]) -> bool:
        return Category(category).value in self.category_handlers()

    async def fetch_category(
        self, category: Union[Category, str], campus: str, count: int
    ) -> list[Any]:
        """
        Fetch the records this platform contributes to a category.

        Raises:
            ConfigurationError: If this platform has no handler for the category
        """
        key = Category(category).value
        handler = self.category_handlers().get(key)
        if handler is None:
            raise ConfigurationError(
                f"{self.name} has no handler for category '{key}'",
                details={"platform": self.name, "category": key},
            )
        return await handler(campus=campus, count=count)

    async def close(self) -> None:
        await self.fetcher.close()


# ─────────────────────────────────────────────────────────────────────────────
# Course sites
# ─────────────────────────────────────────────────────────────────────────────


class CourseSiteSession(PlatformSession):
    """
    Shared behaviour of sites that list courses, notices and assignments.

    Subclasses only supply the site's paths.
    """

    @abstractmethod
    def courses_url(self, campus: Optional[str] = None) -> str: ...

    @abstractmethod
    def course_url(self, course_id: str) -> str: ...

    @abstractmethod
    def assignments_url(self, course_id: str) -> str: ...

    @abstractmethod
    def notices_url(
        self,
        course_id: Optional[str] = None,
        board: Optional[str] = None,
        campus: Optional[str] = None,
    ) -> str: ...

    async def list_courses(self, campus: Optional[str] = None) -> list[CourseRecord]:
        return await self._scrape(self.courses_url(campus), RecordKind.COURSE_LIST)

    async def get_course_details(self, course_id: str) -> CourseRecord:
        return await self._scrape(self.course_url(course_id), RecordKind.COURSE_DETAIL, id=course_id)

    async def list_assignments(self, course_id: str) -> list[AssignmentRecord]:
        return await self._scrape(
            self.assignments_url(course_id), RecordKind.ASSIGNMENT, course_id=course_id
        )

    async def list_notices(
        self,
        course_id: Optional[str] = None,
        board: Optional[str] = None,
        campus: Optional[str] = None,
    ) -> list[NoticeRecord]:
        return await self._scrape(
            self.notices_url(course_id, board, campus), RecordKind.NOTICE, board=board or ""
        )

    async def list_all_assignments(
        self, campus: Optional[str] = None, count: Optional[int] = None
    ) -> list[AssignmentRecord]:
        """Assignments across every listed course, concurrently per course."""
        courses = await self.list_courses(campus)
        if count is not None:
            courses = courses[:count]
        per_course = await asyncio.gather(*(self.list_assignments(c.id) for c in courses))
        return [assignment for batch in per_course for assignment in batch]

    def category_handlers(self) -> dict[str, CategoryHandler]:
        return {
            Category.COURSE.value: self._courses_for_category,
            Category.ASSIGNMENT.value: self.list_all_assignments,
            Category.NOTICE.value: self._notices_for_category,
        }

    async def _courses_for_category(self, campus: str, count: int) -> list[CourseRecord]:
        return await self.list_courses(campus)

    async def _notices_for_category(self, campus: str, count: int) -> list[NoticeRecord]:
        return await self.list_notices(campus=campus)
