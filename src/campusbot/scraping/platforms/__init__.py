"""Authenticated sessions for each external campus site."""

from campusbot.scraping.platforms.base import CourseSiteSession, PlatformSession
from campusbot.scraping.platforms.course_platform import CoursePlatformSession
from campusbot.scraping.platforms.library import LibrarySession
from campusbot.scraping.platforms.portal import PortalSession

__all__ = [
    "PlatformSession",
    "CourseSiteSession",
    "CoursePlatformSession",
    "PortalSession",
    "LibrarySession",
]
