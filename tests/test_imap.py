"""Tests for the imapclient adapter helpers."""

from unittest.mock import patch

from mailtrigger.monitor.imap import IMAPClientDialer, message_count, uid_search_criteria


class TestIMAPClientDialer:
    def test_dial_opens_uid_client(self):
        with patch("mailtrigger.monitor.imap.IMAPClient") as client_cls:
            client = IMAPClientDialer(timeout=60).dial("imap.example.com", 993, True)

        client_cls.assert_called_once_with(
            "imap.example.com", port=993, ssl=True, use_uid=True, timeout=60
        )
        assert client is client_cls.return_value

    def test_dial_keeps_timezones(self):
        """Envelope dates must stay timezone-aware for EMAIL_DATE."""
        with patch("mailtrigger.monitor.imap.IMAPClient"):
            client = IMAPClientDialer().dial("imap.example.com", 143, False)

        assert client.normalise_times is False


def test_message_count():
    assert message_count({b"EXISTS": 3, b"UIDNEXT": 9}) == 3
    assert message_count({}) == 0


def test_uid_search_criteria():
    assert uid_search_criteria(0) == ["UID", "1:*"]
    assert uid_search_criteria(12) == ["UID", "13:*"]
