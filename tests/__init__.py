"""
Tests Package - Unit and integration tests for CampusBot.
=========================================================

Test modules:
- test_shared: Errors, config, utils, schemas, log redaction
- test_scraping: URL builder, extractor, cache, fetcher, retry policy
- test_platforms: Login flow, session expiry, per-site operations
- test_aggregator: Routing, merge, partial failure, caching
- test_cli: Typer commands

Run tests with:
    pytest tests/
    pytest tests/ -v
"""
