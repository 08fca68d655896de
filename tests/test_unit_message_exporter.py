#!/usr/bin/env python3
"""
Unit tests for message export and raw message mapping
"""

import os
import sys
import threading
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from export_errors import ExportCancelledError, InvalidArgumentError, RemoteFailureError
from fake_directory import FakeMailDirectory, make_message
from message_exporter import EmailAddress, EmailBody, export_messages, map_message, validate_count


def directory_with_messages(total, max_page_size=1000):
    messages = {"inbox": [make_message(i) for i in range(total)]}
    return FakeMailDirectory(messages=messages, max_page_size=max_page_size)


class TestExportMessages(unittest.TestCase):
    """Test cases for export_messages()"""

    def test_export_all(self):
        """Test that count=0 pages through every message"""
        directory = directory_with_messages(3400)

        with patch("builtins.print"):
            records = export_messages(directory, "me", "inbox", 0)

        self.assertEqual(len(records), 3400)
        self.assertEqual(records[0].id, "msg-0")
        self.assertEqual(records[-1].id, "msg-3399")
        page_sizes = {call[2] for call in directory.calls}
        self.assertEqual(page_sizes, {1000})
        self.assertEqual(len(directory.calls), 4)

    def test_export_all_reports_progress(self):
        """Test periodic progress output in export-all mode"""
        directory = directory_with_messages(3400)

        with patch("builtins.print") as mock_print:
            export_messages(directory, "me", "inbox", 0, progress_interval=1000)

        progress = [call.args[0] for call in mock_print.call_args_list]
        self.assertEqual(progress, [
            "Retrieved 1000 emails...",
            "Retrieved 2000 emails...",
            "Retrieved 3000 emails...",
        ])

    def test_bounded_count(self):
        """Test that count=10 returns exactly 10 with a single small page"""
        directory = directory_with_messages(3400)

        records = export_messages(directory, "me", "inbox", 10)

        self.assertEqual(len(records), 10)
        self.assertEqual(directory.calls, [("messages", "inbox", 10, None)])

    def test_bounded_count_more_than_available(self):
        """Test that count=10 with 3 messages returns 3"""
        directory = directory_with_messages(3)

        records = export_messages(directory, "me", "inbox", 10)

        self.assertEqual(len(records), 3)

    def test_bounded_count_spanning_pages(self):
        """Test that a count larger than a page keeps paging and stops mid-page"""
        directory = directory_with_messages(3400, max_page_size=1000)

        records = export_messages(directory, "me", "inbox", 2500)

        self.assertEqual(len(records), 2500)
        self.assertEqual(len(directory.calls), 3)
        self.assertEqual(directory.calls[0][2], 1000)

    def test_empty_folder(self):
        """Test exporting an empty folder"""
        directory = FakeMailDirectory(messages={})

        self.assertEqual(export_messages(directory, "me", "inbox", 0), [])

    def test_negative_count_rejected_before_remote_call(self):
        """Test that a negative count is an invalid argument"""
        directory = directory_with_messages(5)

        with self.assertRaises(InvalidArgumentError):
            export_messages(directory, "me", "inbox", -1)

        self.assertEqual(directory.calls, [])

    def test_validate_count(self):
        """Test count validation rules"""
        self.assertEqual(validate_count(0), 0)
        self.assertEqual(validate_count(25), 25)
        for bad in (-5, "10", 1.5, True, None):
            with self.assertRaises(InvalidArgumentError):
                validate_count(bad)

    def test_remote_failure_discards_partial_results(self):
        """Test that an error on a later page aborts the export"""
        directory = directory_with_messages(3400)
        directory.fail_messages_after_pages = 2

        with patch("builtins.print"):
            with self.assertRaises(RemoteFailureError) as ctx:
                export_messages(directory, "me", "inbox", 0)

        self.assertEqual(ctx.exception.category, "remote_failure")

    def test_unexpected_error_becomes_remote_failure(self):
        """Test that non-export errors are wrapped"""
        directory = directory_with_messages(5)

        with patch.object(directory, "list_messages", side_effect=ConnectionError("reset")):
            with self.assertRaises(RemoteFailureError) as ctx:
                export_messages(directory, "me", "inbox", 5)

        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)

    def test_cancel_event(self):
        """Test that a set cancel event aborts the export"""
        directory = directory_with_messages(5)
        cancel_event = threading.Event()
        cancel_event.set()

        with self.assertRaises(ExportCancelledError):
            export_messages(directory, "me", "inbox", 0, cancel_event=cancel_event)

        self.assertEqual(directory.calls, [])


class TestMapMessage(unittest.TestCase):
    """Test cases for map_message()"""

    def test_full_message(self):
        """Test mapping of every field of a Graph message"""
        raw = {
            "id": "AAMk1",
            "subject": "Quarterly report",
            "from": {"emailAddress": {"name": "Alice", "address": "alice@example.com"}},
            "toRecipients": [
                {"emailAddress": {"name": "Bob", "address": "bob@example.com"}},
                {"emailAddress": {"name": None, "address": "carol@example.com"}},
            ],
            "ccRecipients": [],
            "bccRecipients": None,
            "replyTo": [{"emailAddress": {"name": "Alice", "address": "alice@example.com"}}],
            "receivedDateTime": "2024-03-01T08:30:00Z",
            "sentDateTime": "2024-03-01T08:29:55Z",
            "hasAttachments": True,
            "importance": "high",
            "isRead": False,
            "isDraft": True,
            "internetMessageId": "<abc@example.com>",
            "conversationId": "conv-1",
            "categories": ["Red category"],
            "body": {"contentType": "html", "content": "<p>Hello</p>"},
            "bodyPreview": "Hello",
            "flag": {"flagStatus": "flagged"},
        }

        record = map_message(raw)

        self.assertEqual(record.id, "AAMk1")
        self.assertEqual(record.sender, EmailAddress("Alice", "alice@example.com"))
        self.assertEqual(record.to_recipients, [
            EmailAddress("Bob", "bob@example.com"),
            EmailAddress(None, "carol@example.com"),
        ])
        self.assertEqual(record.cc_recipients, [])
        self.assertIsNone(record.bcc_recipients)
        self.assertEqual(record.reply_to, [EmailAddress("Alice", "alice@example.com")])
        self.assertEqual(record.importance, "High")
        self.assertTrue(record.has_attachments)
        self.assertFalse(record.is_read)
        self.assertTrue(record.is_draft)
        self.assertEqual(record.categories, ["Red category"])
        self.assertEqual(record.body, EmailBody("Html", "<p>Hello</p>"))
        self.assertEqual(record.flag_status, "flagged")

    def test_missing_content_type_is_text(self):
        """Test that a body without a content type is treated as text"""
        record = map_message({"id": "1", "body": {"content": "plain"}})

        self.assertEqual(record.body.content_type, "Text")
        self.assertFalse(record.body.is_html)

    def test_missing_body(self):
        """Test that a message without a body maps to an empty text body"""
        record = map_message({"id": "1"})

        self.assertEqual(record.body, EmailBody("Text", None))
        self.assertIsNone(record.sender)
        self.assertIsNone(record.importance)
        self.assertIsNone(record.categories)

    def test_malformed_sender(self):
        """Test that a sender with neither name nor address is kept"""
        record = map_message({"id": "1", "from": {"emailAddress": {}}})

        self.assertEqual(record.sender, EmailAddress(None, None))

    def test_ews_style_importance(self):
        """Test that already capitalized importance values pass through"""
        self.assertEqual(map_message({"id": "1", "importance": "Low"}).importance, "Low")


if __name__ == '__main__':
    unittest.main()
