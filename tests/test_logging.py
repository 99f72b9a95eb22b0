"""
Tests for the logging helpers
"""

from cartsync.logging import get_logger, sanitize_id_for_logging


def test_get_logger_is_cached():
    assert get_logger("cartsync.cart") is get_logger("cartsync.cart")


def test_sanitize_escapes_line_breaks():
    assert sanitize_id_for_logging("p1\nFAKE ENTRY") == "p1\\nFAKE ENTRY"
    assert sanitize_id_for_logging("p1\x00\t") == "p1\\t"


def test_sanitize_clips_long_ids():
    assert sanitize_id_for_logging("x" * 40) == "x" * 24


def test_sanitize_empty():
    assert sanitize_id_for_logging(None) == "N/A"
    assert sanitize_id_for_logging("") == "N/A"
