#!/usr/bin/env python3
"""
Unit tests for the Microsoft Graph mail directory
"""

import os
import sys
import unittest
from unittest.mock import MagicMock, Mock

import requests

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from export_errors import InvalidArgumentError, NotAccessibleError, RemoteFailureError
from folder_tree import flatten
from mail_directory import GraphMailDirectory, create_directory
from message_exporter import export_messages


GRAPH = "https://graph.microsoft.com/v1.0"


def graph_response(payload, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = str(payload)
    return response


def graph_folder(folder_id, name, children=0, total=0, unread=0):
    return {
        "id": folder_id,
        "displayName": name,
        "parentFolderId": "root",
        "childFolderCount": children,
        "totalItemCount": total,
        "unreadItemCount": unread,
    }


class TestGraphMailDirectory(unittest.TestCase):
    """Test cases for GraphMailDirectory"""

    def setUp(self):
        """Set up directory with a mocked requests session"""
        self.session = MagicMock()
        self.directory = GraphMailDirectory(lambda: "token-123", session=self.session)

    def test_list_root_folders_first_page(self):
        """Test URL, paging parameters and folder mapping"""
        self.session.get.return_value = graph_response({
            "value": [graph_folder("f1", "Inbox", children=2, total=10, unread=3)],
            "@odata.nextLink": f"{GRAPH}/me/mailFolders?$skip=100",
        })

        folders, cursor = self.directory.list_root_folders("me")

        args, kwargs = self.session.get.call_args
        self.assertEqual(args[0], f"{GRAPH}/me/mailFolders")
        self.assertEqual(kwargs["params"], {"$top": 100})
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer token-123")
        self.assertEqual(cursor, f"{GRAPH}/me/mailFolders?$skip=100")
        self.assertEqual(folders[0].display_name, "Inbox")
        self.assertEqual(folders[0].child_count, 2)
        self.assertEqual(folders[0].total_items, 10)
        self.assertEqual(folders[0].unread_items, 3)

    def test_next_link_followed_verbatim(self):
        """Test that a continuation link is requested as is"""
        next_link = f"{GRAPH}/users/a@example.com/mailFolders/x/childFolders?$skip=100"
        self.session.get.return_value = graph_response({"value": []})

        folders, cursor = self.directory.list_child_folders("a@example.com", "x", next_link)

        args, kwargs = self.session.get.call_args
        self.assertEqual(args[0], next_link)
        self.assertIsNone(kwargs["params"])
        self.assertEqual(folders, [])
        self.assertIsNone(cursor)

    def test_shared_mailbox_url(self):
        """Test that other mailboxes are addressed through /users"""
        self.session.get.return_value = graph_response({"value": []})

        self.directory.list_child_folders("shared@example.com", "AAMk/+id=")

        url = self.session.get.call_args[0][0]
        self.assertEqual(url, f"{GRAPH}/users/shared@example.com/mailFolders/AAMk%2F%2Bid%3D/childFolders")

    def test_list_messages_page_size_capped(self):
        """Test the $top cap and selected fields"""
        self.session.get.return_value = graph_response({"value": [{"id": "m1"}]})

        messages, cursor = self.directory.list_messages("me", "inbox", 5000)

        params = self.session.get.call_args[1]["params"]
        self.assertEqual(params["$top"], 1000)
        self.assertIn("body", params["$select"].split(","))
        self.assertEqual(messages, [{"id": "m1"}])
        self.assertIsNone(cursor)

    def test_http_error_raises_remote_failure(self):
        """Test that non-200 responses become RemoteFailureError"""
        self.session.get.return_value = graph_response({"error": "nope"}, status_code=500)

        with self.assertRaises(RemoteFailureError) as ctx:
            self.directory.list_root_folders("me")

        self.assertEqual(ctx.exception.status_code, 500)

    def test_network_error_raises_remote_failure(self):
        """Test that requests exceptions become RemoteFailureError"""
        self.session.get.side_effect = requests.ConnectionError("down")

        with self.assertRaises(RemoteFailureError):
            self.directory.list_root_folders("me")

    def test_bind_folder_not_found(self):
        """Test that a 404 on bind is not accessible"""
        self.session.get.return_value = graph_response({"error": "ErrorItemNotFound"}, status_code=404)

        with self.assertRaises(NotAccessibleError):
            self.directory.bind_folder("me", "Nope")

    def test_bind_folder(self):
        """Test binding a well-known folder"""
        self.session.get.return_value = graph_response(graph_folder("inbox-id", "Inbox", children=1))

        folder = self.directory.bind_folder("me", "inbox")

        self.assertEqual(folder.id, "inbox-id")
        self.assertEqual(self.session.get.call_args[0][0], f"{GRAPH}/me/mailFolders/inbox")

    def test_archive_root_not_available(self):
        """Test that Graph refuses archive access with a hint"""
        with self.assertRaises(NotAccessibleError) as ctx:
            self.directory.bind_archive_root("user@example.com")

        self.assertIn("--archive", ctx.exception.hint)
        self.session.get.assert_not_called()

    def test_flatten_over_graph_paging(self):
        """Test the flattener against Graph continuation links"""
        pages = {
            f"{GRAPH}/me/mailFolders": {
                "value": [graph_folder("inbox", "Inbox", children=1)],
                "@odata.nextLink": "next-roots",
            },
            "next-roots": {"value": [graph_folder("sent", "Sent Items")]},
            f"{GRAPH}/me/mailFolders/inbox/childFolders": {"value": [graph_folder("p", "Projects")]},
        }
        self.session.get.side_effect = lambda url, **kwargs: graph_response(pages[url])

        folders = flatten(self.directory, "me")

        self.assertEqual([f.path for f in folders], ["Inbox", "Inbox/Projects", "Sent Items"])

    def test_export_over_graph_paging(self):
        """Test the exporter against Graph continuation links"""
        first = {"value": [{"id": "m1"}, {"id": "m2"}], "@odata.nextLink": "page-2"}
        second = {"value": [{"id": "m3"}]}
        self.session.get.side_effect = [graph_response(first), graph_response(second)]

        records = export_messages(self.directory, "me", "inbox", 0)

        self.assertEqual([r.id for r in records], ["m1", "m2", "m3"])
        self.assertEqual(self.session.get.call_args_list[1][0][0], "page-2")


class TestCreateDirectory(unittest.TestCase):
    """Test cases for backend selection"""

    def test_graph_backend(self):
        self.assertIsInstance(create_directory("graph", lambda: "t"), GraphMailDirectory)

    def test_archive_backend(self):
        from ews_archive import EwsArchiveDirectory
        self.assertIsInstance(create_directory("archive", lambda: "t"), EwsArchiveDirectory)

    def test_unknown_backend(self):
        with self.assertRaises(InvalidArgumentError):
            create_directory("imap", lambda: "t")


if __name__ == '__main__':
    unittest.main()
