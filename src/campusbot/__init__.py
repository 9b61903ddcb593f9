"""
CampusBot - Scraping, caching and aggregation core for a campus chatbot.
========================================================================

Logs into the university's session-based sites, extracts typed records
from their server-rendered pages, merges results across sites and caches
them with expiry:

- Course platform (LearnUs): courses, assignments, course notices
- General portal: courses and notice boards
- Library system: study rooms, reservations, status and opening hours

The chat layer asks for a category ("course", "notice", "studyroom", ...)
and receives records annotated with per-platform outcomes.
"""

__version__ = "0.1.0"
__author__ = "CampusBot Team"
__license__ = "MIT"

__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Main modules (imported on demand)
    "shared",
    "scraping",
    "cli",
]
