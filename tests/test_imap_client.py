"""Tests for the IMAP transport adapter."""

# pylint: disable=protected-access

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from office_agent.core.models import MailCredential
from office_agent.transport import ImapClient, ImapError


def _credential() -> MailCredential:
    return MailCredential(
        host="imap.test", port=993, username="user", password="password", use_ssl=False
    )


def test_fetch_recent_returns_newest_messages_oldest_first() -> None:
    client = ImapClient(_credential(), "INBOX")

    mock_connection = MagicMock()

    def uid(command, *args):
        if command == "SEARCH":
            return "OK", [b"7 101 9 102"]
        if command == "FETCH":
            uid_arg = args[0]
            return "OK", [(b"", f"raw-{uid_arg}".encode()), b")"]
        raise AssertionError("Unexpected IMAP command")

    mock_connection.uid.side_effect = uid

    client._connection = mock_connection  # type: ignore[attr-defined]

    payloads = client.fetch_recent(limit=2)

    assert payloads == [b"raw-101", b"raw-102"]
    mock_connection.uid.assert_any_call("SEARCH", None, "ALL")
    mock_connection.uid.assert_any_call("FETCH", "101", "(RFC822)")
    mock_connection.uid.assert_any_call("FETCH", "102", "(RFC822)")
    assert mock_connection.uid.call_count == 3


def test_fetch_recent_handles_empty_mailbox() -> None:
    client = ImapClient(_credential(), "INBOX")
    mock_connection = MagicMock()
    mock_connection.uid.return_value = ("OK", [b""])
    client._connection = mock_connection  # type: ignore[attr-defined]

    assert client.fetch_recent(limit=20) == []


def test_fetch_recent_requires_connection() -> None:
    with pytest.raises(ImapError):
        ImapClient(_credential(), "INBOX").fetch_recent(limit=5)


def test_failed_search_raises() -> None:
    client = ImapClient(_credential(), "INBOX")
    mock_connection = MagicMock()
    mock_connection.uid.return_value = ("NO", [])
    client._connection = mock_connection  # type: ignore[attr-defined]

    with pytest.raises(ImapError):
        client.fetch_recent(limit=5)
