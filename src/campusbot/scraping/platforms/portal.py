"""
Portal Session - University general portal.
===========================================

Serves course listings and every notice board: general notices plus the
academic, scholarship, career and facilities boards.
"""

from typing import Optional

from campusbot.scraping.platforms.base import CategoryHandler, CourseSiteSession
from campusbot.shared.schemas import Category, NoticeRecord, Platform

# Categories answered from a portal notice board of the same name
BOARD_CATEGORIES = (
    Category.ACADEMIC,
    Category.SCHOLARSHIP,
    Category.CAREER,
    Category.FACILITIES,
)


class PortalSession(CourseSiteSession):
    """Session for the general portal."""

    platform = Platform.PORTAL

    def courses_url(self, campus: Optional[str] = None) -> str:
        return self.urls.query_url("/courses", {"campus": campus})

    def course_url(self, course_id: str) -> str:
        return self.urls.url(f"/courses/{course_id}")

    def assignments_url(self, course_id: str) -> str:
        return self.urls.url(f"/courses/{course_id}/assignments")

    def notices_url(
        self,
        course_id: Optional[str] = None,
        board: Optional[str] = None,
        campus: Optional[str] = None,
    ) -> str:
        if course_id:
            return self.urls.url(f"/courses/{course_id}/notices")
        return self.urls.query_url("/notices", {"category": board, "campus": campus})

    def _board_handler(self, board: str) -> CategoryHandler:
        async def handler(campus: str, count: int) -> list[NoticeRecord]:
            return await self.list_notices(board=board, campus=campus)

        return handler

    def category_handlers(self) -> dict[str, CategoryHandler]:
        handlers = super().category_handlers()
        for category in BOARD_CATEGORIES:
            handlers[category.value] = self._board_handler(category.value)
        return handlers
