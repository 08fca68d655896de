#!/usr/bin/env python3
"""
Message Exporter Module

Pages through a folder's messages on any MailDirectory backend and maps each
raw (Graph-shaped) message into an immutable EmailRecord.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from export_errors import ExportCancelledError, ExportError, InvalidArgumentError, RemoteFailureError
from mail_directory import MailDirectory


# Count used when the caller does not ask for a specific number of messages
DEFAULT_EXPORT_COUNT = 10

IMPORTANCE_VALUES = {"low": "Low", "normal": "Normal", "high": "High"}


@dataclass(frozen=True)
class EmailAddress:
    """Sender or recipient; either part may be missing"""
    name: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class EmailBody:
    """Message body; content_type is 'Html' or 'Text'"""
    content_type: str = "Text"
    content: Optional[str] = None

    @property
    def is_html(self) -> bool:
        return self.content_type == "Html"


@dataclass(frozen=True)
class EmailRecord:
    """Backend-agnostic exported message"""
    id: Optional[str]
    subject: Optional[str] = None
    sender: Optional[EmailAddress] = None
    to_recipients: Optional[List[EmailAddress]] = None
    cc_recipients: Optional[List[EmailAddress]] = None
    bcc_recipients: Optional[List[EmailAddress]] = None
    reply_to: Optional[List[EmailAddress]] = None
    received_at: Optional[str] = None
    sent_at: Optional[str] = None
    has_attachments: bool = False
    importance: Optional[str] = None
    is_read: bool = False
    is_draft: bool = False
    internet_message_id: Optional[str] = None
    conversation_id: Optional[str] = None
    categories: Optional[List[str]] = None
    body: EmailBody = field(default_factory=EmailBody)
    body_preview: Optional[str] = None
    flag_status: Optional[str] = None


def _address(data: Optional[Dict[str, Any]]) -> Optional[EmailAddress]:
    if not data:
        return None
    # Graph wraps the address in an emailAddress object; accept the bare form too
    inner = data.get("emailAddress", data) or {}
    return EmailAddress(name=inner.get("name"), address=inner.get("address"))


def _recipients(data: Optional[List[Dict[str, Any]]]) -> Optional[List[EmailAddress]]:
    if data is None:
        return None
    return [_address(item) or EmailAddress() for item in data]


def _importance(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return IMPORTANCE_VALUES.get(value.lower(), value)


def map_message(raw: Dict[str, Any]) -> EmailRecord:
    """
    Map a raw Graph-shaped message dictionary into an EmailRecord.

    Body content type 'html' (any case) becomes 'Html'; anything else,
    including a missing type, is treated as 'Text'.
    """
    body = raw.get("body") or {}
    content_type = "Html" if (body.get("contentType") or "").lower() == "html" else "Text"
    flag = raw.get("flag") or {}
    categories = raw.get("categories")

    return EmailRecord(
        id=raw.get("id"),
        subject=raw.get("subject"),
        sender=_address(raw.get("from")),
        to_recipients=_recipients(raw.get("toRecipients")),
        cc_recipients=_recipients(raw.get("ccRecipients")),
        bcc_recipients=_recipients(raw.get("bccRecipients")),
        reply_to=_recipients(raw.get("replyTo")),
        received_at=raw.get("receivedDateTime"),
        sent_at=raw.get("sentDateTime"),
        has_attachments=bool(raw.get("hasAttachments")),
        importance=_importance(raw.get("importance")),
        is_read=bool(raw.get("isRead")),
        is_draft=bool(raw.get("isDraft")),
        internet_message_id=raw.get("internetMessageId"),
        conversation_id=raw.get("conversationId"),
        categories=list(categories) if categories is not None else None,
        body=EmailBody(content_type=content_type, content=body.get("content")),
        body_preview=raw.get("bodyPreview"),
        flag_status=flag.get("flagStatus"),
    )


def validate_count(count: Any) -> int:
    """Reject anything but a non-negative integer (0 means 'all')"""
    if isinstance(count, bool) or not isinstance(count, int):
        raise InvalidArgumentError(f"Message count must be an integer, got {count!r}")
    if count < 0:
        raise InvalidArgumentError(f"Message count must be 0 (all) or positive, got {count}")
    return count


def export_messages(directory: MailDirectory, mailbox: str, folder_id: str, count: int,
                    progress_interval: int = 1000,
                    cancel_event: Optional[threading.Event] = None) -> List[EmailRecord]:
    """
    Retrieve messages from a folder and map them into EmailRecords.

    Args:
        directory: Mail directory backend to query
        mailbox: Mailbox identity
        folder_id: Folder to export
        count: 0 exports every message, N > 0 exports at most N
        progress_interval: In 'export all' mode, report progress every N messages
        cancel_event: Optional event checked before every remote call

    Returns:
        List[EmailRecord]: Exported messages in backend order

    Raises:
        InvalidArgumentError: count is negative or not an integer
        RemoteFailureError: Any retrieval error; nothing gathered so far is returned
        ExportCancelledError: cancel_event was set
    """
    validate_count(count)
    export_all = count == 0
    page_size = directory.max_page_size if export_all else min(count, directory.max_page_size)

    records: List[EmailRecord] = []
    cursor = None
    next_report = progress_interval

    try:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise ExportCancelledError("Message export cancelled")

            page, cursor = directory.list_messages(mailbox, folder_id, page_size, cursor)
            for raw in page:
                records.append(map_message(raw))
                if not export_all and len(records) >= count:
                    return records

            if export_all and progress_interval > 0 and len(records) >= next_report:
                print(f"Retrieved {len(records)} emails...")
                while next_report <= len(records):
                    next_report += progress_interval

            if not cursor:
                return records
    except ExportError:
        raise
    except Exception as e:
        raise RemoteFailureError(f"Error exporting messages from folder {folder_id}: {e}") from e
