"""
Shared Module - Common configuration, schemas, errors and logging.
==================================================================

Foundational components used by the scraping core and the CLI:

- config: Settings loading (YAML + environment)
- errors: Typed exception taxonomy
- logging: Rich logging setup with credential redaction
- schemas: Pydantic record models
- utils: Text, number, date and file-size helpers
"""

from campusbot.shared.config import Settings, get_settings
from campusbot.shared.errors import (
    AggregationError,
    AuthenticationError,
    CampusBotError,
    ConfigurationError,
    NetworkError,
    NetworkErrorKind,
    ParseError,
)
from campusbot.shared.logging import get_logger, setup_logging
from campusbot.shared.schemas import (
    AggregatedResult,
    AssignmentRecord,
    AttachmentRecord,
    Category,
    CourseRecord,
    Credentials,
    LibraryResource,
    NoticeRecord,
    Platform,
    RoomRecord,
)

__all__ = [
    # Config
    "get_settings",
    "Settings",
    # Errors
    "CampusBotError",
    "NetworkError",
    "NetworkErrorKind",
    "ParseError",
    "AuthenticationError",
    "ConfigurationError",
    "AggregationError",
    # Logging
    "get_logger",
    "setup_logging",
    # Schemas
    "Platform",
    "Category",
    "CourseRecord",
    "NoticeRecord",
    "AssignmentRecord",
    "AttachmentRecord",
    "RoomRecord",
    "LibraryResource",
    "AggregatedResult",
    "Credentials",
]
