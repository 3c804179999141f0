"""Shared test fixtures for the filter_address_book test suite."""

from __future__ import annotations

import pytest
import structlog

from filter_address_book.config import DirectoryConfig, FilterConfig, RetryConfig
from filter_address_book.controller import TransactionController
from filter_address_book.directory_client import DirectoryClient

DIRECTORY_URL = "http://filterctl.test:2016/filterctl/"


class StubDirectoryClient(DirectoryClient):
    """DirectoryClient answering from an in-memory table instead of HTTP.

    *answers* maps ``(recipient, sender)`` to a list of books or to an
    exception instance to raise.  Unknown pairs return ``[]``.
    """

    def __init__(self, answers: dict | None = None) -> None:
        super().__init__(DirectoryConfig(url=DIRECTORY_URL))
        self.answers = answers if answers is not None else {}
        self.calls: list[tuple[str, str]] = []

    async def scan(self, recipient_mailbox: str, sender_address: str) -> list[str]:
        self.calls.append((recipient_mailbox, sender_address))
        answer = self.answers.get((recipient_mailbox, sender_address), [])
        if isinstance(answer, BaseException):
            raise answer
        return sorted(answer)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo setup_logging() so capture_logs sees uncached loggers."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def directory_config() -> DirectoryConfig:
    return DirectoryConfig(url=DIRECTORY_URL, timeout_seconds=2.0)


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.05,
        multiplier=2.0,
    )


@pytest.fixture
def filter_config(directory_config: DirectoryConfig, retry_config: RetryConfig) -> FilterConfig:
    return FilterConfig(directory=directory_config, retry=retry_config)


@pytest.fixture
def answers() -> dict:
    """Directory answers shared by every stub client a controller creates."""
    return {("r@y.com", "s@x.com"): ["shared"]}


@pytest.fixture
def clients() -> list[StubDirectoryClient]:
    """Every stub client created by the controller, in creation order."""
    return []


@pytest.fixture
def controller(filter_config: FilterConfig, answers: dict, clients: list) -> TransactionController:
    def _factory() -> StubDirectoryClient:
        client = StubDirectoryClient(answers)
        clients.append(client)
        return client

    return TransactionController(filter_config, client_factory=_factory)


def report(event: str, session_id: str, *params: str, version: str = "0.7") -> str:
    """Build a ``report|`` protocol line."""
    return "|".join(["report", version, "1700000000.000001", "smtp-in", event, session_id, *params])


def data_line(session_id: str, token: str, line: str, version: str = "0.7") -> str:
    """Build a ``filter|...|data-line`` protocol line."""
    return "|".join(["filter", version, "1700000000.000002", "smtp-in", "data-line", session_id, token, line])
