#!/usr/bin/env python3
"""
Email Renderer Module

Pure rendering functions for exported emails:

- to_json / from_json: indented JSON mirroring EmailRecord (PascalCase keys)
- to_html: a self-contained, styled HTML report with one card per email
- to_text: a plain-text transcript with '=== EMAIL N ===' delimiters

Note on HTML bodies: to_html embeds Html message bodies as raw markup, exactly
as the mail server returned them. The report is therefore only as safe as the
mail it contains; open reports of untrusted mailboxes with care. Everything
else (subjects, names, addresses, categories, ids) is escaped.
"""

import datetime
import html
import json
from typing import Any, Dict, List, Optional

from content_processor import ContentProcessor
from message_exporter import EmailAddress, EmailBody, EmailRecord


NO_SUBJECT = "(No Subject)"
NO_CONTENT = "(No content)"


# -- JSON ---------------------------------------------------------------------

def _address_to_dict(address: Optional[EmailAddress]) -> Optional[Dict[str, Optional[str]]]:
    if address is None:
        return None
    return {"Name": address.name, "Address": address.address}


def _addresses_to_list(addresses: Optional[List[EmailAddress]]) -> Optional[List[Dict[str, Optional[str]]]]:
    if addresses is None:
        return None
    return [_address_to_dict(address) for address in addresses]


def record_to_dict(record: EmailRecord) -> Dict[str, Any]:
    """Convert an EmailRecord into the exported JSON structure"""
    return {
        "Id": record.id,
        "Subject": record.subject,
        "From": _address_to_dict(record.sender),
        "ToRecipients": _addresses_to_list(record.to_recipients),
        "CcRecipients": _addresses_to_list(record.cc_recipients),
        "BccRecipients": _addresses_to_list(record.bcc_recipients),
        "ReplyTo": _addresses_to_list(record.reply_to),
        "ReceivedDateTime": record.received_at,
        "SentDateTime": record.sent_at,
        "HasAttachments": record.has_attachments,
        "Importance": record.importance,
        "IsRead": record.is_read,
        "IsDraft": record.is_draft,
        "InternetMessageId": record.internet_message_id,
        "ConversationId": record.conversation_id,
        "Categories": list(record.categories) if record.categories is not None else None,
        "Body": {
            "ContentType": record.body.content_type,
            "Content": record.body.content,
        },
        "BodyPreview": record.body_preview,
        "Flag": {"FlagStatus": record.flag_status},
    }


def _address_from_dict(data: Optional[Dict[str, Any]]) -> Optional[EmailAddress]:
    if data is None:
        return None
    return EmailAddress(name=data.get("Name"), address=data.get("Address"))


def _addresses_from_list(data: Optional[List[Dict[str, Any]]]) -> Optional[List[EmailAddress]]:
    if data is None:
        return None
    return [_address_from_dict(item) or EmailAddress() for item in data]


def record_from_dict(data: Dict[str, Any]) -> EmailRecord:
    """Rebuild an EmailRecord from its exported JSON structure"""
    body = data.get("Body") or {}
    flag = data.get("Flag") or {}
    categories = data.get("Categories")
    return EmailRecord(
        id=data.get("Id"),
        subject=data.get("Subject"),
        sender=_address_from_dict(data.get("From")),
        to_recipients=_addresses_from_list(data.get("ToRecipients")),
        cc_recipients=_addresses_from_list(data.get("CcRecipients")),
        bcc_recipients=_addresses_from_list(data.get("BccRecipients")),
        reply_to=_addresses_from_list(data.get("ReplyTo")),
        received_at=data.get("ReceivedDateTime"),
        sent_at=data.get("SentDateTime"),
        has_attachments=bool(data.get("HasAttachments")),
        importance=data.get("Importance"),
        is_read=bool(data.get("IsRead")),
        is_draft=bool(data.get("IsDraft")),
        internet_message_id=data.get("InternetMessageId"),
        conversation_id=data.get("ConversationId"),
        categories=list(categories) if categories is not None else None,
        body=EmailBody(content_type=body.get("ContentType") or "Text", content=body.get("Content")),
        body_preview=data.get("BodyPreview"),
        flag_status=flag.get("FlagStatus"),
    )


def to_json(records: List[EmailRecord]) -> str:
    """Serialize records as indented JSON, leaving non-ASCII characters unescaped"""
    return json.dumps([record_to_dict(record) for record in records], indent=2, ensure_ascii=False)


def from_json(text: str) -> List[EmailRecord]:
    """Parse a document produced by to_json back into records"""
    return [record_from_dict(item) for item in json.loads(text)]


# -- HTML ---------------------------------------------------------------------

HTML_STYLE = """
body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background: #f3f4f6; margin: 0; padding: 24px; color: #1f2937; }
.header { background: linear-gradient(135deg, #0078d4, #005a9e); color: #fff; padding: 24px 32px; border-radius: 10px; margin-bottom: 24px; }
.header h1 { margin: 0 0 6px 0; font-size: 26px; }
.header .subtitle { font-size: 15px; opacity: 0.9; }
.header .meta { margin-top: 12px; font-size: 13px; opacity: 0.85; }
.email-card { background: #fff; border-radius: 10px; box-shadow: 0 1px 4px rgba(0, 0, 0, 0.08); margin-bottom: 20px; overflow: hidden; }
.email-header { padding: 16px 20px; border-bottom: 1px solid #e5e7eb; }
.email-number { display: inline-block; background: #0078d4; color: #fff; font-size: 12px; font-weight: 600; padding: 3px 10px; border-radius: 12px; margin-bottom: 8px; }
.email-subject { font-size: 19px; font-weight: 600; margin: 4px 0 8px 0; }
.badge { display: inline-block; font-size: 11px; font-weight: 600; padding: 2px 8px; border-radius: 10px; margin-right: 6px; }
.badge-read { background: #e5e7eb; color: #374151; }
.badge-unread { background: #dbeafe; color: #1d4ed8; }
.badge-important { background: #fee2e2; color: #b91c1c; }
.badge-draft { background: #fef3c7; color: #92400e; }
.email-meta { width: 100%; border-collapse: collapse; font-size: 13px; }
.email-meta th { text-align: left; vertical-align: top; width: 140px; padding: 6px 20px; color: #6b7280; font-weight: 600; }
.email-meta td { padding: 6px 20px 6px 0; word-break: break-word; }
.email-body { padding: 16px 20px; border-top: 1px solid #e5e7eb; overflow-x: auto; }
.email-body pre { white-space: pre-wrap; word-wrap: break-word; font-family: inherit; margin: 0; }
.no-content { color: #9ca3af; font-style: italic; }
""".strip()


def _escape(value: Optional[str]) -> str:
    return html.escape(value or "", quote=True)


def format_address(address: Optional[EmailAddress]) -> str:
    """Plain 'Name <address>' form of an address (not escaped)"""
    if address is None:
        return "(unknown)"
    if address.name and address.address and address.name != address.address:
        return f"{address.name} <{address.address}>"
    return address.name or address.address or "(unknown)"


def _address_list_html(addresses: List[EmailAddress]) -> str:
    return ", ".join(_escape(format_address(address)) for address in addresses)


def _meta_row(label: str, value_html: str) -> str:
    return f"<tr><th>{label}</th><td>{value_html}</td></tr>"


def _body_html(record: EmailRecord) -> str:
    content = record.body.content if record.body else None
    if content:
        if record.body.is_html:
            # Trusted as delivered by the mail server, embedded without sanitizing
            return content
        return f"<pre>{_escape(content)}</pre>"
    if record.body_preview:
        return f"<pre>{_escape(record.body_preview)}</pre>"
    return f'<p class="no-content">{NO_CONTENT}</p>'


def _email_card(number: int, record: EmailRecord) -> str:
    badges = []
    if record.is_read:
        badges.append('<span class="badge badge-read">Read</span>')
    else:
        badges.append('<span class="badge badge-unread">Unread</span>')
    if record.importance == "High":
        badges.append('<span class="badge badge-important">Important</span>')
    if record.is_draft:
        badges.append('<span class="badge badge-draft">Draft</span>')

    rows = [_meta_row("From", _escape(format_address(record.sender)) if record.sender else "(unknown)")]
    if record.to_recipients:
        rows.append(_meta_row("To", _address_list_html(record.to_recipients)))
    if record.cc_recipients:
        rows.append(_meta_row("Cc", _address_list_html(record.cc_recipients)))
    if record.bcc_recipients:
        rows.append(_meta_row("Bcc", _address_list_html(record.bcc_recipients)))
    if record.reply_to:
        rows.append(_meta_row("Reply-To", _address_list_html(record.reply_to)))
    rows.append(_meta_row("Received", _escape(record.received_at or "N/A")))
    rows.append(_meta_row("Sent", _escape(record.sent_at or "N/A")))
    rows.append(_meta_row("Importance", _escape(record.importance or "Normal")))
    rows.append(_meta_row("Has Attachments", "Yes" if record.has_attachments else "No"))
    if record.categories:
        rows.append(_meta_row("Categories", _escape(", ".join(record.categories))))
    if record.conversation_id:
        rows.append(_meta_row("Conversation ID", _escape(record.conversation_id)))

    subject = _escape(record.subject) if record.subject else NO_SUBJECT

    return (
        '<div class="email-card">\n'
        '  <div class="email-header">\n'
        f'    <div class="email-number">Email #{number}</div>\n'
        f'    <div class="email-subject">{subject}</div>\n'
        f'    <div class="badges">{"".join(badges)}</div>\n'
        '  </div>\n'
        '  <table class="email-meta">\n'
        + "".join(f"    {row}\n" for row in rows)
        + '  </table>\n'
        f'  <div class="email-body">\n{_body_html(record)}\n  </div>\n'
        '</div>\n'
    )


def to_html(records: List[EmailRecord], folder_name: str, mailbox: str,
            exported_at: Optional[datetime.datetime] = None) -> str:
    """
    Render records as a self-contained HTML report.

    Args:
        records: Emails to render, in display order
        folder_name: Exported folder (page title)
        mailbox: Mailbox identity shown in the subtitle
        exported_at: Export timestamp; defaults to now

    Returns:
        str: Complete HTML document
    """
    exported_at = exported_at or datetime.datetime.now()
    title = _escape(folder_name)
    cards = "".join(_email_card(number, record) for number, record in enumerate(records, 1))

    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<title>{title}</title>\n"
        f"<style>\n{HTML_STYLE}\n</style>\n"
        "</head>\n"
        "<body>\n"
        '<div class="header">\n'
        f"  <h1>{title}</h1>\n"
        f'  <div class="subtitle">Folder: {title} &middot; Mailbox: {_escape(mailbox)}</div>\n'
        f'  <div class="meta">Exported: {exported_at.strftime("%Y-%m-%d %H:%M:%S")} &middot; '
        f"Total emails: {len(records)}</div>\n"
        "</div>\n"
        f"{cards}"
        "</body>\n"
        "</html>\n"
    )


# -- plain text ---------------------------------------------------------------

def to_text(records: List[EmailRecord], folder_name: str, mailbox: str,
            content_processor: Optional[ContentProcessor] = None) -> str:
    """Render records as a plain-text transcript with HTML bodies converted to text"""
    processor = content_processor or ContentProcessor()
    lines = [
        f"Folder: {folder_name}",
        f"Mailbox: {mailbox}",
        f"Total emails: {len(records)}",
        "",
    ]
    for number, record in enumerate(records, 1):
        lines.append(f"=== EMAIL {number} ===")
        lines.append(f"Subject: {record.subject or NO_SUBJECT}")
        lines.append(f"From: {format_address(record.sender)}")
        if record.to_recipients:
            lines.append("To: " + ", ".join(format_address(a) for a in record.to_recipients))
        if record.cc_recipients:
            lines.append("Cc: " + ", ".join(format_address(a) for a in record.cc_recipients))
        lines.append(f"Received: {record.received_at or 'N/A'}")
        lines.append("")
        lines.append(processor.extract_body_text(record) or NO_CONTENT)
        lines.append("")
    return "\n".join(lines)
