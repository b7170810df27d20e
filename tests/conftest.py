"""
Pytest configuration and fixtures.

- Integration tests run against a real source portal and are skipped unless
  the BITRIX_TEST_* environment variables are set.
- Integration tests fail on any WARNING (or worse) logged by the code under
  test; unit tests allow them.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, override

import pytest

if TYPE_CHECKING:
    from collections.abc import Generator

INTEGRATION_ENV_VARS: tuple[str, ...] = (
    "BITRIX_TEST_SRC_DOMAIN",
    "BITRIX_TEST_SRC_USER",
    "BITRIX_TEST_SRC_TOKEN",
    "BITRIX_TEST_GROUP_ID",
)

# Warning records captured per integration test
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}


class IntegrationTestWarningHandler(logging.Handler):
    """Logging handler collecting WARNING and above during an integration test."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        _integration_test_warnings.setdefault(self.test_nodeid, []).append(record)


@pytest.fixture(autouse=True)
def check_integration_test_env_vars(request: pytest.FixtureRequest) -> None:
    """Skip integration tests when the test portal is not configured."""
    if request.node.get_closest_marker("integration") is None:
        return
    missing = [name for name in INTEGRATION_ENV_VARS if not os.environ.get(name)]
    if missing:
        pytest.skip(f"Integration tests require environment variables: {', '.join(missing)}")


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """Capture logger warnings during integration tests so the report hook can fail them."""
    if request.node.get_closest_marker("integration") is None:
        yield
        return

    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """Mark a passed integration test as failed when it logged warnings."""
    outcome = yield
    report = outcome.get_result()

    if call.when == "call" and report.outcome == "passed":
        warning_records = _integration_test_warnings.get(item.nodeid, [])

        if warning_records:
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]
            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        _integration_test_warnings.pop(item.nodeid, None)
