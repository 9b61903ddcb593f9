"""
Pytest Configuration and Fixtures.
===================================

Shared fixtures for all test modules:
- Sample pages for every record kind
- A fake campus (httpx.MockTransport) that records requests
- A controllable clock
- Settings overrides
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Generator, Optional, Union

import httpx
import pytest

# Keep a developer's real credentials out of the test run
os.environ.pop("CAMPUSBOT_USERNAME", None)
os.environ.pop("CAMPUSBOT_PASSWORD", None)

LEARNUS = "learnus.yonsei.ac.kr"
PORTAL = "portal.yonsei.ac.kr"
LIBRARY = "library.yonsei.ac.kr"


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


class FakeClock:
    """Manually advanced time source (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class FakeCampus:
    """
    Routes requests by (method, host, path) to canned responses.

    Query strings are ignored for routing. Unknown routes answer 404.
    Every request is recorded for later assertions.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str, str], Responder] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        host: str,
        path: str,
        body: str = "",
        status: int = 200,
        headers: Optional[dict[str, str]] = None,
        json: Any = None,
    ) -> None:
        if json is not None:
            response = httpx.Response(status, json=json, headers=headers)
        else:
            response = httpx.Response(status, text=body, headers=headers)
        self.routes[(method.upper(), host, path)] = response

    def add_handler(self, method: str, host: str, path: str, handler: Responder) -> None:
        self.routes[(method.upper(), host, path)] = handler

    def add_login(self, host: str, login_html: str, logged_in_html: str, path: str = "/login") -> None:
        self.add("GET", host, path, login_html)
        self.add("POST", host, path, logged_in_html)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.host, request.url.path))
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            return route(request)
        return httpx.Response(
            route.status_code, content=route.content, headers=route.headers
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def count(self, host: Optional[str] = None, path: Optional[str] = None) -> int:
        return sum(
            1
            for r in self.requests
            if (host is None or r.url.host == host) and (path is None or r.url.path == path)
        )


# ─────────────────────────────────────────────────────────────────────────────
# Path Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_path(project_root: Path) -> Path:
    """Get the config file path."""
    return project_root / "config" / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Sample Pages
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def login_html() -> str:
    return """
    <html><body>
      <form method="post" action="/login">
        <input type="hidden" name="_csrf" value="tok-123">
        <input type="text" name="username"><input type="password" name="password">
      </form>
    </body></html>
    """


@pytest.fixture
def logged_in_html() -> str:
    return '<html><body><a href="/logout">로그아웃</a> 환영합니다</body></html>'


@pytest.fixture
def rejected_login_html() -> str:
    return "<html><body><p>아이디 또는 비밀번호가 올바르지 않습니다.</p></body></html>"


@pytest.fixture
def learnus_course_list_html() -> str:
    return """
    <html><body>
      <div class="course-list">
        <div class="course-list-item" data-courseid="CSE2010">
          <a class="course-link" href="/course/view.php?id=CSE2010">
            <span class="course-title">자료구조</span>
          </a>
          <span class="professor-name">김교수</span>
          <span class="semester-info">2024-1</span>
          <span class="course-credits">3</span>
          <ul class="course-schedule"><li>월 10:00-11:15</li></ul>
        </div>
        <div class="course-list-item" data-courseid="MAT1011">
          <span class="course-title">미적분학</span>
          <span class="professor-name">이교수</span>
        </div>
      </div>
    </body></html>
    """


@pytest.fixture
def portal_course_list_html() -> str:
    return """
    <html><body>
      <ul class="courses">
        <li class="course-item" data-course-id="CSE2010">
          <span class="course-name">자료구조</span>
          <span class="course-description">Linked lists, trees and graphs.</span>
          <span class="credits">3</span>
          <span class="department">컴퓨터과학과</span>
          <ul class="schedule"><li>월 10:00-11:15</li><li>수 10:00-11:15</li></ul>
        </li>
        <li class="course-item" data-course-id="ECO1001">
          <span class="course-name">경제학원론</span>
          <span class="credits">3</span>
        </li>
      </ul>
    </body></html>
    """


@pytest.fixture
def course_detail_html() -> str:
    return """
    <html><body>
      <div class="course-details" data-course-id="CSE2010">
        <h2 class="course-name">자료구조</h2>
        <span class="professor-name">김교수</span>
        <div class="course-description">Core data structures.</div>
        <ul class="course-objectives"><li>Analyze complexity</li><li>Implement trees</li></ul>
        <div class="course-syllabus"><p>Week 1: Arrays</p><p>Week 2: Lists</p></div>
        <span class="credits">3</span>
        <ul class="schedule">
          <li><span class="day">월</span><span class="time">10:00-11:15</span>
              <span class="location">공학관 101</span></li>
        </ul>
      </div>
    </body></html>
    """


@pytest.fixture
def notice_html() -> str:
    return """
    <html><body>
      <div class="notice-list">
        <div class="notice-item important-notice" data-id="n1">
          <h3 class="notice-title">수강신청 안내</h3>
          <div class="notice-content">2학기 수강신청 일정</div>
          <span class="notice-author">학사팀</span>
          <span class="notice-date">2024-03-02</span>
          <span class="notice-views">1,234</span>
          <ul class="attachments">
            <li class="attachment-item" data-id="a1">
              <span class="attachment-name">guide.pdf</span>
              <a class="attachment-link" href="/files/guide.pdf">download</a>
              <span class="attachment-size">3.2MB</span>
            </li>
          </ul>
        </div>
        <div class="notice-item">
          <h3 class="notice-title">도서관 휴관</h3>
          <span class="date">not a date</span>
        </div>
      </div>
    </body></html>
    """


@pytest.fixture
def assignment_html() -> str:
    return """
    <html><body>
      <div class="assignment-list">
        <div class="assignment-item" data-id="as1">
          <span class="assignment-title">과제 1</span>
          <div class="assignment-description">Implement a stack</div>
          <span class="start-date">2024-03-04 09:00</span>
          <span class="due-date">2024-03-11 23:59</span>
          <span class="status">미제출</span>
          <span class="max-score">100</span>
        </div>
        <div class="assignment-item" data-id="as2">
          <span class="assignment-title">과제 2</span>
          <span class="status">제출 완료</span>
        </div>
        <div class="assignment-item" data-id="as3">
          <span class="assignment-title">과제 3</span>
          <span class="status">Graded</span>
          <span class="max-score">50.5</span>
        </div>
      </div>
    </body></html>
    """


@pytest.fixture
def room_html() -> str:
    return """
    <html><body>
      <div class="room-list">
        <div class="room-item available" data-room-id="R101">
          <span class="room-name">그룹스터디룸 1</span>
          <span class="capacity">6명</span>
          <span class="location">중앙도서관 3층</span>
          <ul class="facilities"><li>화이트보드</li><li>모니터</li><li>화이트보드</li></ul>
          <div class="schedule-item">
            <span class="day">월</span><span class="start-time">10:00</span>
            <span class="end-time">12:00</span><span class="purpose">스터디</span>
          </div>
        </div>
        <div class="room-item" data-room-id="R102">
          <span class="room-name">그룹스터디룸 2</span>
          <span class="location">중앙도서관 3층</span>
        </div>
      </div>
    </body></html>
    """


@pytest.fixture
def room_schedule_html() -> str:
    return """
    <html><body>
      <table class="schedule-table">
        <tr class="schedule-row">
          <td class="day">화</td><td class="start-time">13:00</td><td class="end-time">15:00</td>
          <td class="purpose">회의</td><td class="organizer">홍길동</td>
        </tr>
      </table>
    </body></html>
    """


@pytest.fixture
def library_status_html() -> str:
    return """
    <html><body>
      <div class="library-status">
        <ul>
          <li class="status-item" data-id="reading-1">
            <span class="room-type">제1열람실</span><span class="capacity">200</span>
            <span class="available-count">57</span><span class="status">운영중</span>
          </li>
          <li class="status-item">
            <span class="room-type">노트북열람실</span><span class="capacity">80</span>
            <span class="available-count">0</span><span class="status">점검 중</span>
          </li>
        </ul>
        <div class="hours-item">
          <span class="facility">중앙도서관</span>
          <span class="weekday">09:00-22:00</span>
          <span class="weekend"><span class="open">10:00</span><span class="close">17:00</span></span>
        </div>
        <div class="notice-item" data-id="ln1"><span class="notice-title">시험기간 연장 운영</span></div>
      </div>
    </body></html>
    """


# ─────────────────────────────────────────────────────────────────────────────
# Fakes & Settings
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def campus() -> FakeCampus:
    return FakeCampus()


@pytest.fixture
def credentials():
    from campusbot.shared.schemas import Credentials

    return Credentials(username="student", password="s3cret-pw")


@pytest.fixture
def settings():
    """Default settings with instant retries."""
    from campusbot.shared.config import ScrapingConfig, Settings

    return Settings(scraping=ScrapingConfig(max_retries=2, retry_backoff=0, retry_max_wait=0))


@pytest.fixture
def logged_in_campus(
    campus: FakeCampus, login_html: str, logged_in_html: str
) -> FakeCampus:
    """A campus where every platform accepts the login."""
    for host in (LEARNUS, PORTAL, LIBRARY):
        campus.add_login(host, login_html, logged_in_html)
    return campus


@pytest.fixture(autouse=True)
def reset_settings():
    """Clear the cached settings between tests."""
    from campusbot.shared.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
