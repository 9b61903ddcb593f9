"""
Course Platform Session - Moodle-style learning management site.
================================================================

Paths:
- /my/                              enrolled course list
- /course/view.php?id=<id>          course details
- /mod/assign/index.php?id=<id>     course assignments
- /course/notices.php?id=<id>       course notices
- /local/ubnotification/index.php   site-wide notifications
"""

from typing import Optional

from campusbot.scraping.platforms.base import CourseSiteSession
from campusbot.shared.schemas import Platform


class CoursePlatformSession(CourseSiteSession):
    """Session for the course platform (LearnUs)."""

    platform = Platform.COURSE_PLATFORM

    def courses_url(self, campus: Optional[str] = None) -> str:
        return self.urls.query_url("/my/", {"campus": campus})

    def course_url(self, course_id: str) -> str:
        return self.urls.query_url("/course/view.php", {"id": course_id})

    def assignments_url(self, course_id: str) -> str:
        return self.urls.query_url("/mod/assign/index.php", {"id": course_id})

    def notices_url(
        self,
        course_id: Optional[str] = None,
        board: Optional[str] = None,
        campus: Optional[str] = None,
    ) -> str:
        if course_id:
            return self.urls.query_url("/course/notices.php", {"id": course_id})
        return self.urls.query_url("/local/ubnotification/index.php", {"campus": campus})
