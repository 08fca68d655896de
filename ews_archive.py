#!/usr/bin/env python3
"""
EWS Archive Directory

Exchange Online In-Place Archives are not reachable through Microsoft Graph, so
archive folders and messages are read through Exchange Web Services with
exchangelib. The archive's top-level folders are the children of its message
folder root (ArchiveMsgFolderRoot); folder listings are paged by offset over the
folder hierarchy exchangelib caches, message listings by offset slices of the
folder's item query.

Messages are converted to the same Graph-shaped dictionaries GraphMailDirectory
returns, so the rest of the exporter does not care which backend it talks to.
"""

from typing import Any, Callable, Dict, List, Optional

from exchangelib import (
    DELEGATE,
    OAUTH2,
    Account,
    Configuration,
    HTMLBody,
    Message,
    OAuth2AuthorizationCodeCredentials,
)
from exchangelib.items import MeetingCancellation, MeetingRequest, MeetingResponse
from exchangelib.errors import EWSError

from export_errors import NotAccessibleError, RemoteFailureError
from mail_directory import FolderNode, FolderPage, MailDirectory, MessagePage


# Item kinds exported as email (meeting items are email messages in EWS too)
MESSAGE_TYPES = (Message, MeetingRequest, MeetingResponse, MeetingCancellation)

# Response codes meaning the archive (or the mailbox) does not exist
ARCHIVE_MISSING_CODES = {
    "ErrorItemNotFound",
    "ErrorFolderNotFound",
    "ErrorNonExistentMailbox",
    "ErrorMailboxStoreUnavailable",
}

ARCHIVE_ROOT_ID = "archivemsgfolderroot"

# Graph caps bodyPreview at 255 characters
PREVIEW_LENGTH = 255


def _response_code(error: Exception) -> str:
    # exchangelib names each EWS error class after its ResponseCode
    return type(error).__name__


def _timestamp(value: Any) -> Optional[str]:
    return value.ewsformat() if value is not None else None


def _address(mailbox: Any) -> Optional[Dict[str, Any]]:
    if mailbox is None:
        return None
    return {"emailAddress": {"name": mailbox.name, "address": mailbox.email_address}}


def _recipients(mailboxes: Optional[List[Any]]) -> Optional[List[Dict[str, Any]]]:
    if mailboxes is None:
        return None
    return [_address(mailbox) for mailbox in mailboxes]


def folder_from_ews(folder: Any) -> FolderNode:
    """Convert an exchangelib folder into a FolderNode"""
    parent = folder.parent_folder_id
    display_name = folder.name or ""
    return FolderNode(
        id=folder.id or "",
        display_name=display_name,
        path=display_name,
        total_items=folder.total_count or 0,
        unread_items=folder.unread_count or 0,
        child_count=folder.child_folder_count or 0,
        parent_id=parent.id if parent is not None else None,
    )


def message_from_ews(item: Any) -> Dict[str, Any]:
    """Convert an exchangelib message into a Graph-shaped message dictionary"""
    body = item.body
    text_body = item.text_body
    conversation = item.conversation_id

    return {
        "id": item.id,
        "subject": item.subject,
        "from": _address(item.sender),
        "toRecipients": _recipients(item.to_recipients),
        "ccRecipients": _recipients(item.cc_recipients),
        "bccRecipients": _recipients(item.bcc_recipients),
        "replyTo": _recipients(item.reply_to),
        "receivedDateTime": _timestamp(item.datetime_received),
        "sentDateTime": _timestamp(item.datetime_sent),
        "hasAttachments": bool(item.has_attachments),
        "importance": item.importance,
        "isRead": bool(item.is_read),
        "isDraft": bool(item.is_draft),
        "internetMessageId": item.message_id,
        "conversationId": conversation.id if conversation is not None else None,
        "categories": list(item.categories) if item.categories is not None else None,
        "body": {
            "contentType": "html" if isinstance(body, HTMLBody) else "text",
            "content": str(body) if body is not None else None,
        },
        "bodyPreview": text_body[:PREVIEW_LENGTH] if text_body else None,
        "flag": {"flagStatus": None},
    }


def create_account(mailbox: str, access_token: str, server: str) -> Account:
    """Open a delegate exchangelib Account for mailbox using a bearer token"""
    credentials = OAuth2AuthorizationCodeCredentials(
        access_token={"access_token": access_token, "token_type": "Bearer"},
    )
    config = Configuration(server=server, credentials=credentials, auth_type=OAUTH2)
    return Account(primary_smtp_address=mailbox, config=config, autodiscover=False, access_type=DELEGATE)


class EwsArchiveDirectory(MailDirectory):
    """Exchange Web Services implementation for archive mailboxes (offset paging)"""

    EWS_SERVER = "outlook.office365.com"

    max_page_size = 1000
    name = "archive"

    def __init__(self, token_provider: Callable[[], str], server: Optional[str] = None,
                 account_factory: Optional[Callable[[str, str, str], Account]] = None):
        """
        Args:
            token_provider: Callable returning a valid EWS access token
            server: EWS host name
            account_factory: Builds an Account from (mailbox, token, server); tests inject a fake
        """
        self.token_provider = token_provider
        self.server = server or self.EWS_SERVER
        self.account_factory = account_factory or create_account
        self._accounts: Dict[str, Account] = {}
        self._folders: Dict[tuple, Any] = {}

    def _account(self, mailbox: str) -> Account:
        if mailbox not in self._accounts:
            self._accounts[mailbox] = self.account_factory(mailbox, self.token_provider(), self.server)
        return self._accounts[mailbox]

    @staticmethod
    def _remote_failure(error: Exception) -> RemoteFailureError:
        return RemoteFailureError(f"EWS error: {error}", response_code=_response_code(error))

    def _remember(self, mailbox: str, folder: Any) -> FolderNode:
        node = folder_from_ews(folder)
        self._folders[(mailbox, node.id)] = folder
        return node

    # -- folders -------------------------------------------------------------

    def _archive_msg_root(self, mailbox: str) -> Any:
        """The archive's message folder root, or NotAccessibleError when there is no archive"""
        try:
            return self._account(mailbox).archive_msg_folder_root
        except EWSError as e:
            if _response_code(e) in ARCHIVE_MISSING_CODES:
                raise NotAccessibleError(
                    f"Archive mailbox of {mailbox} not accessible. Ensure In-Place Archive is enabled.",
                    hint="Make sure the mailbox has an active archive in Exchange Admin Center",
                ) from e
            raise self._remote_failure(e) from e

    def _folder(self, mailbox: str, folder_id: str) -> Any:
        if folder_id.lower() == ARCHIVE_ROOT_ID:
            return self._archive_msg_root(mailbox)

        folder = self._folders.get((mailbox, folder_id))
        if folder is not None:
            return folder

        root = self._archive_msg_root(mailbox)
        try:
            for candidate in root.walk():
                if candidate.id == folder_id:
                    self._folders[(mailbox, folder_id)] = candidate
                    return candidate
        except EWSError as e:
            raise self._remote_failure(e) from e

        raise NotAccessibleError(
            f"Folder '{folder_id}' is not accessible in the archive of {mailbox}",
            hint="Use --list-folders to see the available archive folders",
        )

    def _child_page(self, mailbox: str, folder: Any, cursor: Optional[int]) -> FolderPage:
        offset = int(cursor or 0)
        try:
            children = list(folder.children)
        except EWSError as e:
            raise self._remote_failure(e) from e

        page = children[offset:offset + self.max_page_size]
        next_offset = offset + len(page)
        return [self._remember(mailbox, child) for child in page], (
            next_offset if next_offset < len(children) else None
        )

    def bind_archive_root(self, mailbox: str) -> FolderNode:
        print(f"[EWS] Accessing archive mailbox for: {mailbox}")
        root = self._remember(mailbox, self._archive_msg_root(mailbox))
        print(f"✅ Archive root accessed: {root.display_name}")
        print(f"  Total items in root: {root.total_items}")
        print(f"  Child folder count: {root.child_count}")
        return root

    def bind_folder(self, mailbox: str, folder_id: str) -> FolderNode:
        return self._remember(mailbox, self._folder(mailbox, folder_id))

    def list_root_folders(self, mailbox: str, cursor: Optional[int] = None) -> FolderPage:
        # The archive's top-level folders are the children of its message root
        return self._child_page(mailbox, self._archive_msg_root(mailbox), cursor)

    def list_child_folders(self, mailbox: str, folder_id: str, cursor: Optional[int] = None) -> FolderPage:
        return self._child_page(mailbox, self._folder(mailbox, folder_id), cursor)

    # -- messages ------------------------------------------------------------

    def list_messages(self, mailbox: str, folder_id: str, page_size: int,
                      cursor: Optional[int] = None) -> MessagePage:
        page_size = min(page_size, self.max_page_size)
        offset = int(cursor or 0)
        folder = self._folder(mailbox, folder_id)

        try:
            items = list(folder.all().order_by("-datetime_received")[offset:offset + page_size])
        except EWSError as e:
            raise self._remote_failure(e) from e

        messages = []
        for item in items:
            if isinstance(item, Exception):
                raise self._remote_failure(item)
            if isinstance(item, MESSAGE_TYPES):
                messages.append(message_from_ews(item))

        next_offset = offset + len(items) if len(items) == page_size else None
        return messages, next_offset
