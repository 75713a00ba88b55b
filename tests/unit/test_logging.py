"""Unit tests for femtologging integration helpers.

Run with:
    pytest tests/unit/test_logging.py
"""

from __future__ import annotations

import pytest

from pipescan.logging import (
    configure_logging,
    format_log_message,
    log_debug,
    log_error,
    log_exception,
    log_info,
    log_warning,
    normalize_log_level,
)


class _FakeLogger:
    """Collects log calls for assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, object | None, bool]] = []

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str:
        self.calls.append((level, message, exc_info, stack_info))
        return message


class TestNormalizeLogLevel:
    """Tests for normalize_log_level."""

    @pytest.mark.parametrize(
        ("input_level", "expected_level", "expected_invalid"),
        [
            ("warning", "WARNING", False),
            (" trace ", "TRACE", False),
            ("WARN", "WARN", False),
            (None, "INFO", True),
            ("", "INFO", True),
            ("verbose", "INFO", True),
        ],
    )
    def test_normalize_log_level(
        self,
        input_level: str | None,
        expected_level: str,
        expected_invalid: bool,  # noqa: FBT001
    ) -> None:
        """Normalize log levels and flag invalid inputs."""
        level, invalid = normalize_log_level(input_level)
        assert level == expected_level, (
            f"Expected {input_level!r} to normalize to {expected_level}."
        )
        assert invalid is expected_invalid, (
            f"Expected invalid flag to be {expected_invalid} for {input_level!r}."
        )


def test_format_log_message_uses_percent_formatting() -> None:
    """Percent formatting produces the expected message."""
    message = format_log_message("scanned %s (%d manifests)", "acme/widgets", 3)
    assert message == "scanned acme/widgets (3 manifests)"


def test_format_log_message_without_args_keeps_percent() -> None:
    """A template with no arguments is returned untouched."""
    assert format_log_message("100% done") == "100% done"


def test_log_debug_and_info_levels() -> None:
    """log_debug and log_info emit their own levels."""
    logger = _FakeLogger()

    log_debug(logger, "ignoring %s", "a.yml")
    log_info(logger, "hello %s", "world")

    assert logger.calls == [
        ("DEBUG", "ignoring a.yml", None, False),
        ("INFO", "hello world", None, False),
    ]


def test_log_warning_forwards_exc_info() -> None:
    """log_warning forwards exc_info to the logger."""
    logger = _FakeLogger()
    exc = ValueError("boom")

    log_warning(logger, "warning: %s", "oops", exc_info=exc)

    assert logger.calls == [("WARNING", "warning: oops", exc, False)]


def test_log_error_defaults_stack_info_false() -> None:
    """log_error defaults stack_info to False."""
    logger = _FakeLogger()

    log_error(logger, "error: %s", "oops")

    assert logger.calls == [("ERROR", "error: oops", None, False)]


def test_log_exception_does_not_format_message() -> None:
    """log_exception passes the message through verbatim with exc_info."""
    logger = _FakeLogger()
    exc = ValueError("boom")

    log_exception(logger, "failed at 100%", exc)

    assert logger.calls == [("ERROR", "failed at 100%", exc, False)]


@pytest.mark.parametrize(
    ("input_level", "expected_normalized", "expected_stdlib", "expected_invalid"),
    [
        ("DEBUG", "DEBUG", "DEBUG", False),
        ("trace", "TRACE", "DEBUG", False),
        ("warn", "WARN", "WARNING", False),
        ("nope", "INFO", "INFO", True),
    ],
)
def test_configure_logging(
    monkeypatch: pytest.MonkeyPatch,
    input_level: str,
    expected_normalized: str,
    expected_stdlib: str,
    expected_invalid: bool,  # noqa: FBT001
) -> None:
    """configure_logging sets both femtologging and stdlib root levels."""
    femto: dict[str, object] = {}
    stdlib: dict[str, object] = {}

    monkeypatch.setattr(
        "pipescan.logging.basicConfig", lambda **kwargs: femto.update(kwargs)
    )
    monkeypatch.setattr(
        "pipescan.logging.stdlib_logging.basicConfig",
        lambda **kwargs: stdlib.update(kwargs),
    )

    normalized, invalid = configure_logging(input_level)

    assert normalized == expected_normalized
    assert invalid is expected_invalid
    assert femto == {"level": expected_normalized, "force": False}
    assert stdlib["level"] == expected_stdlib
    assert stdlib["force"] is False
