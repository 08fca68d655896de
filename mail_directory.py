#!/usr/bin/env python3
"""
Mail Directory Module

Defines the folder model and the capability interface the exporter needs from a
remote mailbox directory, plus the Microsoft Graph implementation used for
primary mailboxes. The Exchange Web Services implementation used for archive
mailboxes lives in ews_archive.py; create_directory() picks one based on the
configured backend.
"""

import urllib.parse
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from export_errors import InvalidArgumentError, NotAccessibleError, RemoteFailureError


@dataclass
class FolderNode:
    """A single mail folder as discovered during one traversal"""
    id: str
    display_name: str
    path: str
    total_items: int = 0
    unread_items: int = 0
    child_count: int = 0
    parent_id: Optional[str] = None


# (items on this page, cursor for the next page or None)
FolderPage = Tuple[List[FolderNode], Optional[Any]]
MessagePage = Tuple[List[Dict[str, Any]], Optional[Any]]


class MailDirectory(ABC):
    """Capability interface shared by the Graph and EWS backends"""

    max_page_size: int = 1000
    name: str = "directory"

    @abstractmethod
    def list_root_folders(self, mailbox: str, cursor: Optional[Any] = None) -> FolderPage:
        """List one page of top-level folders of a mailbox"""

    @abstractmethod
    def list_child_folders(self, mailbox: str, folder_id: str, cursor: Optional[Any] = None) -> FolderPage:
        """List one page of direct children of a folder"""

    @abstractmethod
    def list_messages(self, mailbox: str, folder_id: str, page_size: int,
                      cursor: Optional[Any] = None) -> MessagePage:
        """
        List one page of messages in a folder.

        Messages are returned as Graph-shaped dictionaries (camelCase keys such as
        subject, from, toRecipients, body.contentType) whatever the backend is.
        """

    @abstractmethod
    def bind_archive_root(self, mailbox: str) -> FolderNode:
        """Bind the archive root folder, raising NotAccessibleError if there is none"""

    @abstractmethod
    def bind_folder(self, mailbox: str, folder_id: str) -> FolderNode:
        """Bind a folder by id or well-known name, raising NotAccessibleError if missing"""


class GraphMailDirectory(MailDirectory):
    """Microsoft Graph implementation (continuation-link paging)"""

    GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0"
    FOLDER_PAGE_SIZE = 100

    MESSAGE_FIELDS = [
        "id", "subject", "from", "toRecipients", "ccRecipients", "bccRecipients",
        "replyTo", "receivedDateTime", "sentDateTime", "hasAttachments", "importance",
        "isRead", "isDraft", "internetMessageId", "conversationId", "categories",
        "body", "bodyPreview", "flag",
    ]

    max_page_size = 1000
    name = "graph"

    def __init__(self, token_provider: Callable[[], str], session: Optional[requests.Session] = None,
                 timeout: int = 60):
        """
        Args:
            token_provider: Callable returning a valid Graph access token
            session: Optional requests session (tests inject a mock)
            timeout: Per-request timeout in seconds
        """
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.timeout = timeout

    def _mailbox_url(self, mailbox: str) -> str:
        if not mailbox or mailbox.lower() == "me":
            return f"{self.GRAPH_ENDPOINT}/me"
        return f"{self.GRAPH_ENDPOINT}/users/{urllib.parse.quote(mailbox, safe='@')}"

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.token_provider()}",
            "Accept": "application/json",
        }
        try:
            response = self.session.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise RemoteFailureError(f"Graph API request failed: {e}") from e

        if response.status_code != 200:
            raise RemoteFailureError(
                f"Graph API error: {response.status_code} - {response.text[:300]}",
                status_code=response.status_code,
            )
        return response.json()

    @staticmethod
    def folder_from_graph(data: Dict[str, Any]) -> FolderNode:
        display_name = data.get("displayName") or ""
        return FolderNode(
            id=data.get("id", ""),
            display_name=display_name,
            path=display_name,
            total_items=int(data.get("totalItemCount") or 0),
            unread_items=int(data.get("unreadItemCount") or 0),
            child_count=int(data.get("childFolderCount") or 0),
            parent_id=data.get("parentFolderId"),
        )

    def _folder_page(self, first_url: str, cursor: Optional[str]) -> FolderPage:
        if cursor:
            result = self._get(cursor)
        else:
            result = self._get(first_url, params={"$top": self.FOLDER_PAGE_SIZE})
        folders = [self.folder_from_graph(item) for item in result.get("value", [])]
        return folders, result.get("@odata.nextLink")

    def list_root_folders(self, mailbox: str, cursor: Optional[str] = None) -> FolderPage:
        return self._folder_page(f"{self._mailbox_url(mailbox)}/mailFolders", cursor)

    def list_child_folders(self, mailbox: str, folder_id: str, cursor: Optional[str] = None) -> FolderPage:
        folder = urllib.parse.quote(folder_id, safe="")
        return self._folder_page(f"{self._mailbox_url(mailbox)}/mailFolders/{folder}/childFolders", cursor)

    def list_messages(self, mailbox: str, folder_id: str, page_size: int,
                      cursor: Optional[str] = None) -> MessagePage:
        if cursor:
            result = self._get(cursor)
        else:
            folder = urllib.parse.quote(folder_id, safe="")
            result = self._get(
                f"{self._mailbox_url(mailbox)}/mailFolders/{folder}/messages",
                params={
                    "$top": min(page_size, self.max_page_size),
                    "$select": ",".join(self.MESSAGE_FIELDS),
                },
            )
        return result.get("value", []), result.get("@odata.nextLink")

    def bind_folder(self, mailbox: str, folder_id: str) -> FolderNode:
        folder = urllib.parse.quote(folder_id, safe="")
        try:
            data = self._get(f"{self._mailbox_url(mailbox)}/mailFolders/{folder}")
        except RemoteFailureError as e:
            if e.status_code in (401, 403, 404):
                raise NotAccessibleError(
                    f"Folder '{folder_id}' is not accessible in mailbox {mailbox}",
                    hint="Check the folder name and that you have (delegated) access to the mailbox",
                ) from e
            raise
        return self.folder_from_graph(data)

    def bind_archive_root(self, mailbox: str) -> FolderNode:
        raise NotAccessibleError(
            f"Archive mailbox of {mailbox} is not reachable through Microsoft Graph",
            hint="Use the archive backend (--archive), which talks to Exchange Web Services",
        )


def create_directory(backend: str, token_provider: Callable[[], str]) -> MailDirectory:
    """
    Create the mail directory implementation for the configured backend.

    Args:
        backend: 'graph' for primary mailboxes, 'archive' for In-Place Archives (EWS)
        token_provider: Callable returning an access token valid for that backend

    Returns:
        MailDirectory: Backend implementation
    """
    backend = (backend or "graph").lower()
    if backend == "graph":
        return GraphMailDirectory(token_provider)
    if backend == "archive":
        from ews_archive import EwsArchiveDirectory
        return EwsArchiveDirectory(token_provider)

    raise InvalidArgumentError(f"Unknown backend '{backend}'. Supported backends: graph, archive")
