"""
Tests for Shared Module.
========================

Tests for:
- Utils: text, number, date and file-size decoding
- Errors: taxonomy and serialization
- Config: defaults, YAML loading, credentials from the environment
- Logging: credential redaction, temporary levels
- Schemas: record validation
"""

import logging
from datetime import datetime
from pathlib import Path

import pytest


# ─────────────────────────────────────────────────────────────────────────────
# Utils Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestFileSize:
    """Tests for human-readable size decoding."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("3.2MB", 3355443),
            ("512KB", 524288),
            ("1GB", 1073741824),
            ("100B", 100),
            ("1.5 kb", 1536),
            ("0.5MB", 524288),
        ],
    )
    def test_parse_known_units(self, text: str, expected: int):
        """Test that each unit in the table is applied."""
        from campusbot.shared.utils import parse_file_size

        assert parse_file_size(text) == expected

    @pytest.mark.parametrize("text", ["", None, "bogus", "12", "MB", "3.2TB"])
    def test_unparseable_is_zero(self, text):
        """Test that unknown size text decodes to 0."""
        from campusbot.shared.utils import parse_file_size

        assert parse_file_size(text) == 0


class TestTextHelpers:
    """Tests for whitespace and number helpers."""

    def test_normalize_whitespace(self):
        """Test that runs of spaces and blank lines collapse."""
        from campusbot.shared.utils import normalize_whitespace

        assert normalize_whitespace("  자료   구조\n\n\n\n 소개 ") == "자료 구조\n\n소개"
        assert normalize_whitespace("a  b") == "a b"
        assert normalize_whitespace(None) == ""

    def test_parse_int_strips_separators(self):
        """Test that thousands separators and units are ignored."""
        from campusbot.shared.utils import parse_int

        assert parse_int("1,234 views") == 1234
        assert parse_int("6명") == 6
        assert parse_int("") == 0
        assert parse_int("none", default=7) == 7

    def test_parse_int_rejects_negative(self):
        """Test that negative counts fall back to the default."""
        from campusbot.shared.utils import parse_int

        assert parse_int("-5") == 0

    def test_parse_float(self):
        """Test that decimal scores are decoded."""
        from campusbot.shared.utils import parse_float

        assert parse_float("100.5 pts") == 100.5
        assert parse_float("n/a") == 0.0


class TestDates:
    """Tests for date decoding."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("2024-03-02", datetime(2024, 3, 2)),
            ("2024-03-11 23:59", datetime(2024, 3, 11, 23, 59)),
            ("2024.03.02", datetime(2024, 3, 2)),
            ("2024/03/02 14:30", datetime(2024, 3, 2, 14, 30)),
            ("2024년 03월 02일", datetime(2024, 3, 2)),
        ],
    )
    def test_known_formats(self, text: str, expected: datetime):
        """Test that site date formats are parsed."""
        from campusbot.shared.utils import parse_datetime

        assert parse_datetime(text) == expected

    def test_unknown_format_is_none(self):
        """Test that unparseable dates decode to None."""
        from campusbot.shared.utils import parse_datetime

        assert parse_datetime("not a date") is None
        assert parse_datetime("") is None


class TestIds:
    """Tests for id and key helpers."""

    def test_generate_record_id_format(self):
        """Test the namespace-timestamp-ordinal format."""
        from campusbot.shared.utils import generate_record_id

        assert generate_record_id("notice", 3, timestamp_ms=1700000000000) == "notice-1700000000000-3"

    def test_make_cache_key(self):
        """Test that cache keys join parts with colons."""
        from campusbot.shared.utils import make_cache_key

        assert make_cache_key("course", "신촌", 20) == "course:신촌:20"

    def test_json_round_trip(self, temp_dir: Path):
        """Test that JSON helpers create parents and keep Korean text."""
        from campusbot.shared.utils import load_json, save_json

        path = temp_dir / "nested" / "data.json"
        save_json(path, {"campus": "신촌"})

        assert load_json(path) == {"campus": "신촌"}
        assert "신촌" in path.read_text(encoding="utf-8")


# ─────────────────────────────────────────────────────────────────────────────
# Errors Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestErrors:
    """Tests for the error taxonomy."""

    @pytest.mark.parametrize(
        "kind,retryable",
        [("connection", True), ("timeout", True), ("rate_limit", True), ("unknown", False)],
    )
    def test_retryable_kinds(self, kind: str, retryable: bool):
        """Test that only transient kinds are retryable."""
        from campusbot.shared.errors import NetworkError

        assert NetworkError("x", kind=kind).is_retryable is retryable

    def test_network_error_to_dict(self):
        """Test that network details are serialized."""
        from campusbot.shared.errors import NetworkError, NetworkErrorKind

        error = NetworkError("slow down", kind=NetworkErrorKind.RATE_LIMIT, retry_after=30, status_code=429)
        data = error.to_dict()

        assert data["name"] == "NetworkError"
        assert data["type"] == "network"
        assert data["kind"] == "rate_limit"
        assert data["retry_after"] == 30
        assert data["status_code"] == 429

    def test_aggregation_error_lists_causes(self):
        """Test that an aggregation error names every failed platform."""
        from campusbot.shared.errors import AggregationError, AuthenticationError, NetworkError

        error = AggregationError(
            "notice",
            {"course_platform": NetworkError("HTTP 500"), "portal": AuthenticationError("expired")},
        )

        assert "course_platform: HTTP 500" in str(error)
        assert "portal: expired" in str(error)
        assert set(error.failures) == {"course_platform", "portal"}
        assert error.to_dict()["failures"]["portal"]["type"] == "authentication"

    def test_all_errors_share_base(self):
        """Test that every error derives from CampusBotError."""
        from campusbot.shared.errors import (
            AuthenticationError,
            CampusBotError,
            ConfigurationError,
            NetworkError,
            ParseError,
        )

        for error_type in (NetworkError, ParseError, AuthenticationError, ConfigurationError):
            assert issubclass(error_type, CampusBotError)


# ─────────────────────────────────────────────────────────────────────────────
# Config Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestConfig:
    """Tests for settings loading."""

    def test_defaults(self):
        """Test the built-in defaults."""
        from campusbot.shared.config import Settings

        settings = Settings()

        assert settings.cache.default_ttl == 1800
        assert settings.cache.max_size == 1000
        assert settings.cache.cleanup_interval == 300
        assert settings.scraping.timeout == 10
        assert settings.scraping.max_retries == 3
        assert settings.aggregation.default_campus == "신촌"
        assert settings.get_platform("course_platform").logout_path == "/login/logout.php"

    def test_headers_are_browser_like(self):
        """Test that request headers carry UA and Korean Accept-Language."""
        from campusbot.shared.config import ScrapingConfig

        headers = ScrapingConfig().headers

        assert "Mozilla/5.0" in headers["User-Agent"]
        assert headers["Accept-Language"].startswith("ko-KR")

    def test_platform_override_keeps_other_platforms(self):
        """Test that overriding one platform keeps the others' defaults."""
        from campusbot.shared.config import Settings

        settings = Settings(platforms={"portal": {"base_url": "https://portal.example"}})

        assert settings.get_platform("portal").base_url == "https://portal.example"
        assert settings.get_platform("portal").login_path == "/login"
        assert settings.get_platform("library").base_url == "https://library.yonsei.ac.kr"

    def test_credentials_missing(self):
        """Test that credentials are None when not configured."""
        from campusbot.shared.config import Settings

        assert Settings().credentials is None

    def test_credentials_from_environment(self, monkeypatch):
        """Test that credentials come from the environment and stay secret."""
        from campusbot.shared.config import Settings

        monkeypatch.setenv("CAMPUSBOT_USERNAME", "student")
        monkeypatch.setenv("CAMPUSBOT_PASSWORD", "s3cret-pw")
        settings = Settings()

        assert settings.credentials.username == "student"
        assert settings.credentials.password.get_secret_value() == "s3cret-pw"
        assert "s3cret-pw" not in repr(settings)
        assert "s3cret-pw" not in settings.model_dump_json()

    def test_yaml_loading(self, temp_dir: Path):
        """Test that YAML values override defaults."""
        from campusbot.shared.config import _create_settings

        config_file = temp_dir / "settings.yaml"
        config_file.write_text(
            "cache:\n  default_ttl: 60\naggregation:\n  routes:\n    course: [portal]\n",
            encoding="utf-8",
        )
        settings = _create_settings(config_file)

        assert settings.cache.default_ttl == 60
        assert settings.aggregation.routes == {"course": ["portal"]}

    def test_environment_overrides_yaml(self, config_path: Path, monkeypatch):
        """Test that nested environment variables beat values from settings.yaml."""
        from campusbot.shared.config import _create_settings

        monkeypatch.setenv("CACHE__DEFAULT_TTL", "600")
        monkeypatch.setenv("SCRAPING__TIMEOUT", "3")

        settings = _create_settings(config_path)

        assert settings.cache.default_ttl == 600.0
        assert settings.scraping.timeout == 3.0
        assert settings.cache.category_ttl["studyroom"] == 60

    def test_keyword_arguments_override_yaml(self, temp_dir: Path):
        """Test that explicit arguments still win over the YAML file."""
        from campusbot.shared.config import CacheConfig, Settings

        yaml_path = temp_dir / "settings.yaml"
        yaml_path.write_text("cache:\n  default_ttl: 60\n", encoding="utf-8")

        class FileSettings(Settings):
            config_file = yaml_path

        assert FileSettings().cache.default_ttl == 60
        assert FileSettings(cache=CacheConfig(default_ttl=5)).cache.default_ttl == 5

    def test_missing_yaml_is_empty(self, temp_dir: Path):
        """Test that a missing config file yields defaults."""
        from campusbot.shared.config import _load_yaml_config

        assert _load_yaml_config(temp_dir / "absent.yaml") == {}

    def test_invalid_max_size(self):
        """Test that a non-positive cache size is rejected."""
        from pydantic import ValidationError

        from campusbot.shared.config import CacheConfig

        with pytest.raises(ValidationError):
            CacheConfig(max_size=0)

    def test_project_config_file_loads(self, config_path: Path):
        """Test that the shipped settings.yaml is valid."""
        from campusbot.shared.config import _create_settings

        settings = _create_settings(config_path)

        assert settings.cache.category_ttl["studyroom"] == 60
        assert settings.get_effective_log_level() in {"DEBUG", "INFO", "WARNING", "ERROR"}

    def test_get_settings_is_cached(self):
        """Test that get_settings returns one instance until reloaded."""
        from campusbot.shared.config import get_settings, reload_settings

        first = get_settings()
        assert get_settings() is first
        assert reload_settings() is not first


# ─────────────────────────────────────────────────────────────────────────────
# Logging Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestRedaction:
    """Tests for the credential-redacting log filter."""

    def _record(self, msg: str, *args) -> logging.LogRecord:
        return logging.LogRecord("campusbot", logging.INFO, __file__, 1, msg, args, None)

    def test_masks_password_fields(self):
        """Test that password and CSRF values are masked."""
        from campusbot.shared.logging import RedactingFilter

        record = self._record("POST /login username=student&password=s3cret&_csrf=tok-123")
        RedactingFilter().filter(record)

        message = record.getMessage()
        assert "s3cret" not in message
        assert "tok-123" not in message
        assert "username=student" in message

    def test_masks_interpolated_args(self):
        """Test that values passed as %-args are masked too."""
        from campusbot.shared.logging import RedactingFilter

        record = self._record("form: %s", {"password": "s3cret"})
        RedactingFilter().filter(record)

        assert "s3cret" not in record.getMessage()

    def test_leaves_other_messages(self):
        """Test that unrelated messages pass unchanged."""
        from campusbot.shared.logging import RedactingFilter

        record = self._record("Fetched %d notices", 3)
        assert RedactingFilter().filter(record) is True
        assert record.getMessage() == "Fetched 3 notices"


class TestLogContext:
    """Tests for temporary log level changes."""

    def test_raises_and_restores_level(self):
        """Test that one logger tree gets DEBUG only inside the context."""
        from campusbot.shared.logging import LogContext

        logger = logging.getLogger("campusbot.scraping.fetcher")
        parent = logging.getLogger("campusbot")
        original = parent.level

        with LogContext("DEBUG", "campusbot"):
            assert logger.isEnabledFor(logging.DEBUG)
        assert parent.level == original

    def test_forced_setup_leaves_handlers_unfiltered(self):
        """Test that reconfiguring installs handlers without their own level."""
        from campusbot.shared.logging import setup_logging

        setup_logging(level="WARNING", use_rich=False, force=True)
        try:
            root = logging.getLogger()
            assert root.level == logging.WARNING
            assert all(h.level == logging.NOTSET for h in root.handlers)
        finally:
            setup_logging(level="INFO", force=True)


# ─────────────────────────────────────────────────────────────────────────────
# Schema Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestSchemas:
    """Tests for record models."""

    def test_records_are_frozen(self):
        """Test that extracted records cannot be mutated."""
        from pydantic import ValidationError

        from campusbot.shared.schemas import CourseRecord

        course = CourseRecord(id="CSE2010", platform="portal")
        with pytest.raises(ValidationError):
            course.name = "changed"

    def test_negative_counts_rejected(self):
        """Test that credits and views must be non-negative."""
        from pydantic import ValidationError

        from campusbot.shared.schemas import CourseRecord, NoticeRecord

        with pytest.raises(ValidationError):
            CourseRecord(id="x", platform="portal", credits=-1)
        with pytest.raises(ValidationError):
            NoticeRecord(id="x", platform="portal", views=-1)

    def test_aggregated_result_round_trip(self):
        """Test that mixed records re-validate from JSON by kind."""
        from campusbot.shared.schemas import (
            AggregatedResult,
            CourseRecord,
            PlatformOutcome,
            RoomRecord,
        )

        result = AggregatedResult(
            category="facilities",
            campus="신촌",
            count=5,
            records=[CourseRecord(id="c", platform="portal"), RoomRecord(id="r")],
            platforms={"portal": PlatformOutcome(success=True, count=1)},
        )
        restored = AggregatedResult.model_validate_json(result.model_dump_json())

        assert isinstance(restored.records[0], CourseRecord)
        assert isinstance(restored.records[1], RoomRecord)

    def test_partial_flag(self):
        """Test that a failed platform marks the result partial."""
        from campusbot.shared.schemas import AggregatedResult, PlatformOutcome

        result = AggregatedResult(
            category="notice",
            campus="신촌",
            count=20,
            platforms={
                "course_platform": PlatformOutcome(success=True, count=2),
                "portal": PlatformOutcome(success=False, error="HTTP 500"),
            },
        )

        assert result.partial is True
        assert result.failed_platforms == ["portal"]
