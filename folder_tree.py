#!/usr/bin/env python3
"""
Folder Tree Module

Walks a mailbox folder hierarchy and flattens it into a pre-order list of
FolderNode objects with slash-joined paths. The walk keeps an explicit stack of
lazily paged child listings instead of recursing, so stopping early once a
target folder is found is a plain break out of the loop.
"""

import dataclasses
import threading
from typing import Callable, Iterator, List, Optional

from export_errors import (
    ExportCancelledError,
    ExportError,
    NotAccessibleError,
    SubtreeUnavailableError,
    TargetNotFoundError,
)
from mail_directory import FolderNode, MailDirectory


# Root selectors understood by flatten(); any other value is a folder id or
# well-known folder name bound with MailDirectory.bind_folder()
ALL_ROOTS = "*"
ARCHIVE_ROOT = "archive"

StopPredicate = Callable[[FolderNode], bool]


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ExportCancelledError("Folder discovery cancelled")


def _iter_children(directory: MailDirectory, mailbox: str, parent: Optional[FolderNode],
                   cancel_event: Optional[threading.Event]) -> Iterator[FolderNode]:
    """
    Yield the children of parent (or the mailbox roots when parent is None) page
    by page, with their paths filled in. A page is only requested once the
    previous one has been consumed.
    """
    cursor = None
    while True:
        _check_cancelled(cancel_event)
        if parent is None:
            folders, cursor = directory.list_root_folders(mailbox, cursor)
        else:
            folders, cursor = directory.list_child_folders(mailbox, parent.id, cursor)

        for folder in folders:
            path = folder.display_name if parent is None else f"{parent.path}/{folder.display_name}"
            yield dataclasses.replace(folder, path=path)

        if not cursor:
            return


def _reason(error: Exception) -> str:
    return error.message if isinstance(error, ExportError) else str(error)


def _bind_root(directory: MailDirectory, mailbox: str, root_selector: str) -> FolderNode:
    try:
        if root_selector == ARCHIVE_ROOT:
            root = directory.bind_archive_root(mailbox)
        else:
            root = directory.bind_folder(mailbox, root_selector)
    except NotAccessibleError:
        raise
    except Exception as e:
        raise NotAccessibleError(f"Root folder '{root_selector}' is not accessible: {_reason(e)}") from e
    return dataclasses.replace(root, path=root.display_name)


def flatten(directory: MailDirectory, mailbox: str, root_selector: str = ALL_ROOTS,
            stop_predicate: Optional[StopPredicate] = None,
            cancel_event: Optional[threading.Event] = None) -> List[FolderNode]:
    """
    Discover folders depth-first (pre-order) and return them as a flat list.

    Args:
        directory: Mail directory backend to query
        mailbox: Mailbox identity (email address, or 'me')
        root_selector: ALL_ROOTS, ARCHIVE_ROOT, or a folder id / well-known name
        stop_predicate: Optional test applied to every discovered node; the first
            match is kept and ends the traversal
        cancel_event: Optional event checked before every remote call

    Returns:
        List[FolderNode]: Folders in discovery order

    Raises:
        NotAccessibleError: The root folder(s) could not be bound or listed
        ExportCancelledError: cancel_event was set
    """
    folders: List[FolderNode] = []
    stack: List[Iterator[FolderNode]] = []
    owners: List[Optional[FolderNode]] = []

    _check_cancelled(cancel_event)
    if root_selector == ALL_ROOTS:
        roots = _iter_children(directory, mailbox, None, cancel_event)
        stack.append(roots)
        owners.append(None)
    else:
        root = _bind_root(directory, mailbox, root_selector)
        folders.append(root)
        if stop_predicate and stop_predicate(root):
            return folders
        if root.child_count > 0:
            stack.append(_iter_children(directory, mailbox, root, cancel_event))
            owners.append(root)

    while stack:
        try:
            node = next(stack[-1])
        except StopIteration:
            stack.pop()
            owners.pop()
            continue
        except ExportCancelledError:
            raise
        except Exception as e:
            owner = owners[-1]
            stack.pop()
            owners.pop()
            if owner is None:
                if isinstance(e, NotAccessibleError):
                    raise
                raise NotAccessibleError(
                    f"Folders of mailbox {mailbox} are not accessible ({directory.name}): {_reason(e)}",
                    hint="Check the mailbox address and that you have (delegated) access to it",
                ) from e
            warning = SubtreeUnavailableError(
                f"Error retrieving child folders of '{owner.path}': {_reason(e)}",
                folder_path=owner.path,
            )
            print(f"Warning: {warning}")
            continue

        folders.append(node)
        if stop_predicate and stop_predicate(node):
            break

        if node.child_count > 0:
            stack.append(_iter_children(directory, mailbox, node, cancel_event))
            owners.append(node)

    return folders


def matches_folder(node: FolderNode, target: str) -> bool:
    """Case-insensitive match of a target against a folder's display name or path"""
    wanted = target.strip().strip("/").lower()
    return node.display_name.lower() == wanted or node.path.lower() == wanted


def make_target_predicate(target: str) -> StopPredicate:
    """Build a stop predicate that fires on the first folder whose id, name or path matches target"""
    return lambda node: node.id == target or matches_folder(node, target)


def find_folder(folders: List[FolderNode], target: str) -> FolderNode:
    """
    Pick the folder a user asked for.

    An exact id match wins, then a path match, then the first display name match.

    Raises:
        TargetNotFoundError: No folder matches; the error lists what is available
    """
    for folder in folders:
        if folder.id == target:
            return folder

    wanted = target.strip().strip("/").lower()
    for folder in folders:
        if folder.path.lower() == wanted:
            return folder
    for folder in folders:
        if folder.display_name.lower() == wanted:
            return folder

    raise TargetNotFoundError(
        f"Folder '{target}' was not found",
        available=[folder.path for folder in folders],
    )
