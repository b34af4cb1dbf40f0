"""Fetched message model and text extraction.

Converts one entry of an imapclient fetch response (ENVELOPE plus
BODY[]) into a FetchedMessage, and extracts the inline text parts
that trigger body patterns are matched against.
"""

from dataclasses import dataclass, field
from datetime import datetime
from email import policy
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from email.parser import BytesParser

from mailtrigger.errors import MessageProcessingError

UNKNOWN_SENDER = "<unknown>"


@dataclass
class FetchedMessage:
    """A message as fetched from the server.

    Built by the fetch step and consumed immediately by dispatch;
    never retained.
    """

    uid: int
    from_addrs: list[str] = field(default_factory=list)  # bare "user@host"
    to_addrs: list[str] = field(default_factory=list)
    subject: str = ""
    date: datetime | None = None
    raw: bytes = b""  # Full RFC 822 message

    @property
    def sender(self) -> str:
        """First sender address, or a placeholder if there is none."""
        return self.from_addrs[0] if self.from_addrs else UNKNOWN_SENDER

    @property
    def timestamp(self) -> str:
        """Message date in RFC 3339 format, empty if unknown.

        A naive date is taken to be local time.
        """
        if self.date is None:
            return ""
        date = self.date
        if date.tzinfo is None:
            date = date.astimezone()
        return date.isoformat(timespec="seconds")

    @classmethod
    def from_fetch(cls, uid: int, data: dict) -> "FetchedMessage":
        """Build a message from one imapclient fetch result.

        Args:
            uid: Message UID (the key of the fetch response dict).
            data: Fetch data, keyed by b"ENVELOPE", b"BODY[]", ...

        Raises:
            MessageProcessingError: If the envelope is missing.
        """
        envelope = data.get(b"ENVELOPE")
        if envelope is None:
            raise MessageProcessingError(f"message UID {uid} has no envelope")

        return cls(
            uid=uid,
            from_addrs=_format_addresses(envelope.from_),
            to_addrs=_format_addresses(envelope.to),
            subject=decode_subject(envelope.subject),
            date=envelope.date,
            raw=data.get(b"BODY[]") or b"",
        )


def _to_str(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _format_addresses(addresses) -> list[str]:
    """Convert imapclient Address tuples to bare "mailbox@host" strings."""
    result = []
    for address in addresses or ():
        mailbox = _to_str(address.mailbox)
        host = _to_str(address.host)
        # Group syntax entries carry no host
        if mailbox and host:
            result.append(f"{mailbox}@{host}")
        elif mailbox:
            result.append(mailbox)
    return result


def decode_subject(subject: bytes | str | None) -> str:
    """Decode a raw envelope subject, including RFC 2047 encoded words."""
    text = _to_str(subject)
    try:
        return str(make_header(decode_header(text)))
    except (HeaderParseError, LookupError, UnicodeDecodeError):
        return text


def extract_text_body(raw: bytes) -> str:
    """Concatenate every inline text/* part of a message.

    Attachments are skipped, even when they are text. Parts are decoded
    using their declared charset, falling back to UTF-8.

    Args:
        raw: Full RFC 822 message bytes.

    Returns:
        The concatenated text, or "" if the message has no text parts.
    """
    if not raw:
        return ""

    # compat32 handles real-world malformed emails better than the
    # "email" policy
    msg = BytesParser(policy=policy.compat32).parsebytes(raw)

    parts = []
    for part in msg.walk():
        if part.is_multipart():
            continue
        if part.get_content_maintype() != "text":
            continue
        disposition = str(part.get("Content-Disposition", "")).lower()
        if disposition.startswith("attachment"):
            continue

        payload = part.get_payload(decode=True)
        if not payload:
            continue
        charset = part.get_content_charset() or "utf-8"
        try:
            parts.append(payload.decode(charset, errors="replace"))
        except LookupError:
            # Unknown charset name
            parts.append(payload.decode("utf-8", errors="replace"))

    return "".join(parts)
