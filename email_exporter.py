#!/usr/bin/env python3
"""
Outlook Folder Exporter Script

Signs in with a device code, lets you pick a mailbox and a folder, and exports
the folder's emails to JSON, HTML and/or plain text files.
- Primary mailboxes: Microsoft Graph API
- In-Place Archives: Exchange Web Services (Graph cannot reach them)
Settings come from the environment (or a .env file) and can be overridden on
the command line; anything still missing is asked for interactively.
"""

import argparse
import datetime
import os
import re
import sys
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

from email_renderer import to_html, to_json, to_text
from export_errors import ExportError, InvalidArgumentError, NotAccessibleError, TargetNotFoundError
from folder_tree import ALL_ROOTS, find_folder, flatten, make_target_predicate
from mail_directory import FolderNode, MailDirectory, create_directory
from message_exporter import DEFAULT_EXPORT_COUNT, EmailRecord, export_messages, validate_count
from outlook_oauth import OutlookOAuth2Client, create_outlook_oauth_client


# Output format -> file extensions written
OUTPUT_FORMATS: Dict[str, List[str]] = {
    "json": ["json"],
    "html": ["html"],
    "both": ["json", "html"],
    "text": ["txt"],
    "all": ["json", "html", "txt"],
}

BACKENDS = ("graph", "archive")


@dataclass
class ExportRequest:
    """Everything needed to export one folder"""
    mailbox: str
    folder: str
    count: int = DEFAULT_EXPORT_COUNT
    output_format: str = "both"
    backend: str = "graph"

    def validate(self) -> None:
        """Reject bad parameters before any remote call is made"""
        validate_count(self.count)
        if self.output_format not in OUTPUT_FORMATS:
            raise InvalidArgumentError(
                f"Unknown output format '{self.output_format}'. Supported formats: {', '.join(OUTPUT_FORMATS)}"
            )
        if self.backend not in BACKENDS:
            raise InvalidArgumentError(f"Unknown backend '{self.backend}'. Supported backends: {', '.join(BACKENDS)}")
        if not self.folder or not self.folder.strip():
            raise InvalidArgumentError("A folder name, path or id is required")


@dataclass
class ExportStats:
    """Statistics for one run of the exporter"""
    folders_discovered: int = 0
    exports_completed: int = 0
    emails_exported: int = 0
    files_written: List[str] = field(default_factory=list)
    errors: int = 0

    start_time: Optional[datetime.datetime] = None
    end_time: Optional[datetime.datetime] = None

    def start_processing(self) -> None:
        """Mark the start of processing"""
        self.start_time = datetime.datetime.now()

    def end_processing(self) -> None:
        """Mark the end of processing"""
        self.end_time = datetime.datetime.now()

    def get_processing_duration(self) -> Optional[str]:
        """Get formatted processing duration"""
        if self.start_time and self.end_time:
            duration = self.end_time - self.start_time
            total_seconds = int(duration.total_seconds())
            hours, remainder = divmod(total_seconds, 3600)
            minutes, seconds = divmod(remainder, 60)

            if hours > 0:
                return f"{hours}h {minutes}m {seconds}s"
            elif minutes > 0:
                return f"{minutes}m {seconds}s"
            else:
                return f"{seconds}s"
        return None

    def get_summary(self) -> str:
        """Get a formatted summary of the run"""
        duration_str = self.get_processing_duration()
        duration_line = f"\n  Processing time: {duration_str}" if duration_str else ""

        summary = (f"Export Summary:\n"
                   f"  Folders discovered: {self.folders_discovered}\n"
                   f"  Exports completed: {self.exports_completed}\n"
                   f"  Emails exported: {self.emails_exported}\n"
                   f"  Files written: {len(self.files_written)}\n"
                   f"  Errors: {self.errors}{duration_line}")

        for path in self.files_written:
            summary += f"\n    - {path}"
        return summary


class EmailExporterConfig:
    """Handles configuration loading and validation"""

    def __init__(self):
        self.client_id: Optional[str] = None
        self.tenant_id: str = "common"
        self.mailbox: Optional[str] = None
        self.folder: Optional[str] = None
        self.root: str = ALL_ROOTS
        self.backend: str = "graph"
        self.output_format: str = "both"
        self.count: Optional[int] = None
        self.output_dir: str = "output"
        self.token_cache_file: str = "outlook_token_cache.json"
        self.stop_at_target: bool = False
        self.list_folders_only: bool = False
        self.interactive: bool = True

    def validate_environment(self, args: Optional[argparse.Namespace] = None) -> None:
        """
        Load settings from the environment (.env supported) and apply command-line
        overrides. Exits with an error message if anything is missing or invalid.
        """
        load_dotenv()

        self.client_id = (os.getenv("AZURE_CLIENT_ID") or "").strip()
        if not self.client_id:
            print("Error: Missing required environment variable: AZURE_CLIENT_ID")
            print("Please ensure your .env file contains:")
            print("  AZURE_CLIENT_ID=your_app_registration_client_id")
            sys.exit(1)

        self.tenant_id = (os.getenv("AZURE_TENANT_ID") or "common").strip() or "common"
        self.mailbox = (os.getenv("MAILBOX") or "").strip() or None
        self.backend = (os.getenv("EXPORT_BACKEND") or "graph").strip().lower()
        self.output_format = (os.getenv("EXPORT_FORMAT") or "both").strip().lower()
        self.output_dir = (os.getenv("OUTPUT_DIR") or "output").strip()
        self.token_cache_file = (os.getenv("TOKEN_CACHE_FILE") or "outlook_token_cache.json").strip()

        count = (os.getenv("EXPORT_COUNT") or "").strip()
        if count:
            self.count = self._parse_count(count, "EXPORT_COUNT")

        if args is not None:
            self._apply_arguments(args)

        if self.backend not in BACKENDS:
            print(f"Error: Invalid backend '{self.backend}'. Supported backends: {', '.join(BACKENDS)}")
            sys.exit(1)
        if self.output_format not in OUTPUT_FORMATS:
            print(f"Error: Invalid output format '{self.output_format}'. "
                  f"Supported formats: {', '.join(OUTPUT_FORMATS)}")
            sys.exit(1)

        print(f"Configuration validated successfully (backend: {self.backend}, format: {self.output_format})")

    def _apply_arguments(self, args: argparse.Namespace) -> None:
        if args.mailbox:
            self.mailbox = args.mailbox.strip()
        if args.folder:
            self.folder = args.folder
        if args.root:
            self.root = args.root
        if args.archive:
            self.backend = "archive"
        if args.format:
            self.output_format = args.format.lower()
        if args.count is not None:
            self.count = self._parse_count(args.count, "--count")
        if args.output_dir:
            self.output_dir = args.output_dir
        self.stop_at_target = args.stop_at_target
        self.list_folders_only = args.list_folders
        self.interactive = not args.non_interactive

    @staticmethod
    def _parse_count(value: str, source: str) -> int:
        value = str(value).strip().lower()
        if value == "all":
            return 0
        try:
            count = int(value)
        except ValueError:
            count = -1
        if count < 0:
            print(f"Error: Invalid {source} '{value}'. Use 'all', 0 (all) or a positive number")
            sys.exit(1)
        return count


class OutputWriter:
    """Builds output file names and writes rendered exports"""

    def __init__(self, output_dir: str = "output"):
        """
        Initialize OutputWriter.

        Args:
            output_dir: Directory where output files are stored
        """
        self.output_dir = output_dir
        self._ensure_output_directory()

    def _ensure_output_directory(self) -> None:
        """Create output directory if it doesn't exist"""
        if not os.path.exists(self.output_dir):
            os.makedirs(self.output_dir)
            print(f"Created output directory: {self.output_dir}")

    @staticmethod
    def sanitize_folder_name(folder_name: str) -> str:
        """Replace characters that are not safe in file names with underscores"""
        sanitized = re.sub(r"[^\w.-]+", "_", folder_name or "")
        sanitized = re.sub(r"_+", "_", sanitized).strip("._")
        return sanitized or "folder"

    def build_output_path(self, folder_name: str, extension: str, archive: bool = False) -> str:
        """Output path in format: exported_emails_<folder>[_archive].<ext>"""
        suffix = "_archive" if archive else ""
        filename = f"exported_emails_{self.sanitize_folder_name(folder_name)}{suffix}.{extension}"
        return os.path.join(self.output_dir, filename)

    def render(self, records: List[EmailRecord], folder_name: str, mailbox: str,
               output_format: str) -> Dict[str, str]:
        """Render every requested format in memory, keyed by file extension"""
        renderers = {
            "json": lambda: to_json(records),
            "html": lambda: to_html(records, folder_name, mailbox),
            "txt": lambda: to_text(records, folder_name, mailbox),
        }
        return {ext: renderers[ext]() for ext in OUTPUT_FORMATS[output_format]}

    def write_export(self, records: List[EmailRecord], folder_name: str, mailbox: str,
                     output_format: str, archive: bool = False) -> List[str]:
        """
        Render and write an export.

        All formats are rendered before the first file is written, so a rendering
        failure leaves no partial output behind.

        Returns:
            List[str]: Paths of the files written
        """
        rendered = self.render(records, folder_name, mailbox, output_format)

        written = []
        for extension, content in rendered.items():
            path = self.build_output_path(folder_name, extension, archive)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
            size_kb = os.path.getsize(path) / 1024.0
            print(f"✅ Exported {len(records)} emails to: {path}")
            print(f"  File size: {size_kb:.2f} KB")
            written.append(path)
        return written


class ExportSession:
    """Interactive (or scripted) export session against one signed-in account"""

    def __init__(self, config: EmailExporterConfig, oauth_client: OutlookOAuth2Client,
                 output_writer: Optional[OutputWriter] = None):
        self.config = config
        self.oauth_client = oauth_client
        self.output_writer = output_writer or OutputWriter(config.output_dir)
        self.stats = ExportStats()
        self.cancel_event = threading.Event()
        self.user: Dict = {}
        self.mailbox: Optional[str] = None
        self.mailbox_name: Optional[str] = None
        self._directories: Dict[str, MailDirectory] = {}

    def _prompt(self, message: str) -> str:
        return input(message).strip()

    def directory(self, backend: str) -> MailDirectory:
        """Mail directory for a backend, authenticated with the matching scopes"""
        if backend not in self._directories:
            scopes = (self.oauth_client.EWS_SCOPES if backend == "archive"
                      else self.oauth_client.GRAPH_SCOPES)
            self._directories[backend] = create_directory(backend, self.oauth_client.token_provider(scopes))
        return self._directories[backend]

    def authenticate(self) -> None:
        """Sign in and show who we are"""
        self.user = self.oauth_client.get_current_user()
        print("\n✅ Authentication successful!")
        print(f"Logged in as: {self.user.get('displayName')}")
        print(f"Email: {self.user.get('mail') or self.user.get('userPrincipalName')}")

    def select_mailbox(self) -> str:
        """Pick the mailbox to export from (configured, primary or custom)"""
        primary_email = self.user.get("mail") or self.user.get("userPrincipalName") or ""
        primary_name = self.user.get("displayName") or "Primary Mailbox"

        if self.config.mailbox:
            self.mailbox, self.mailbox_name = self.config.mailbox, self.config.mailbox
        elif not self.config.interactive:
            self.mailbox, self.mailbox_name = primary_email, primary_name
        else:
            print("\nNote: To access shared/delegated mailboxes, you'll need to know their email addresses.")
            print("\nFound 1 mailbox(es):")
            print(f"  [1] {primary_name} ({primary_email}) - Primary")
            print("  [0] Enter custom mailbox email address")
            selection = self._prompt("\nSelect mailbox (enter number): ")
            if selection == "0":
                custom = self._prompt("Enter mailbox email address: ")
                self.mailbox, self.mailbox_name = custom, custom
            else:
                if selection != "1":
                    print("Invalid selection, using primary mailbox.")
                self.mailbox, self.mailbox_name = primary_email, primary_name

        if not self.mailbox:
            raise InvalidArgumentError("No mailbox address available; set MAILBOX or pass --mailbox")

        print(f"\nSelected mailbox: {self.mailbox_name} ({self.mailbox})")
        return self.mailbox

    def discover_folders(self, backend: str, target: Optional[str] = None) -> List[FolderNode]:
        """Flatten the folder tree of the selected mailbox"""
        stop_predicate = make_target_predicate(target) if target and self.config.stop_at_target else None
        folders = flatten(
            self.directory(backend),
            self.mailbox,
            root_selector=self.config.root,
            stop_predicate=stop_predicate,
            cancel_event=self.cancel_event,
        )
        self.stats.folders_discovered = len(folders)
        print(f"✅ Retrieved {len(folders)} folder(s)")
        return folders

    @staticmethod
    def print_folders(folders: List[FolderNode]) -> None:
        """Print a numbered folder listing"""
        print(f"\nFound {len(folders)} mail folders:\n")
        for index, folder in enumerate(folders, 1):
            print(f"  [{index}] {folder.path}")
            print(f"      ID: {folder.id}")
            print(f"      Total Items: {folder.total_items}  Unread Items: {folder.unread_items}")

    def choose_folder(self, folders: List[FolderNode]) -> FolderNode:
        """Resolve the configured folder, or ask for one by number, name or path"""
        target = self.config.folder
        if not target and self.config.interactive:
            self.print_folders(folders)
            target = self._prompt("\nSelect folder (number, name or path): ")
            if target.isdigit() and 1 <= int(target) <= len(folders):
                return folders[int(target) - 1]
        if not target:
            raise InvalidArgumentError("No folder selected; pass --folder or run interactively")
        return find_folder(folders, target)

    def choose_count(self) -> int:
        if self.config.count is not None:
            return self.config.count
        if not self.config.interactive:
            return DEFAULT_EXPORT_COUNT

        answer = self._prompt(f"How many emails to export? (number, 'all', default {DEFAULT_EXPORT_COUNT}): ")
        if not answer:
            return DEFAULT_EXPORT_COUNT
        if answer.lower() == "all":
            return 0
        try:
            return validate_count(int(answer))
        except ValueError:
            raise InvalidArgumentError(f"Invalid email count '{answer}'") from None

    def export_folder(self, request: ExportRequest, folder: FolderNode) -> List[str]:
        """Export one folder and write its output files"""
        request.validate()
        print(f"\nExporting emails from '{folder.path}'...")
        print(f"  Mailbox: {request.mailbox}")
        print(f"  Count: {'all' if request.count == 0 else request.count}")

        records = export_messages(
            self.directory(request.backend),
            request.mailbox,
            folder.id,
            request.count,
            cancel_event=self.cancel_event,
        )
        print(f"\nRetrieved {len(records)} emails")

        written = self.output_writer.write_export(
            records,
            folder.display_name,
            request.mailbox,
            request.output_format,
            archive=request.backend == "archive",
        )
        self.stats.exports_completed += 1
        self.stats.emails_exported += len(records)
        self.stats.files_written.extend(written)
        return written

    def run(self) -> int:
        """Run the session; returns a process exit code"""
        self.stats.start_processing()
        backend = self.config.backend

        print("\n[2/5] Authentication")
        print("-" * 40)
        self.authenticate()

        print("\n[3/5] Mailbox Selection")
        print("-" * 40)
        self.select_mailbox()

        while True:
            print("\n[4/5] Folder Discovery")
            print("-" * 40)
            folders = self.discover_folders(backend, self.config.folder)

            if self.config.list_folders_only:
                self.print_folders(folders)
                break

            try:
                folder = self.choose_folder(folders)
            except TargetNotFoundError as e:
                self.stats.errors += 1
                print(f"❌ Error {e}")
                print("Available folders:")
                for path in e.available:
                    print(f"  - {path}")
                if not self.config.interactive:
                    self.stats.end_processing()
                    return 2
                self.config.folder = None
                continue

            print("\n[5/5] Export")
            print("-" * 40)
            request = ExportRequest(
                mailbox=self.mailbox,
                folder=folder.id,
                count=self.choose_count(),
                output_format=self.config.output_format,
                backend=backend,
            )
            self.export_folder(request, folder)

            if not self.config.interactive:
                break
            again = self._prompt("\nExport another folder? (y/N): ").lower()
            if again not in ("y", "yes"):
                break
            self.config.folder = None
            self.config.count = None

        self.stats.end_processing()
        print("\n" + self.stats.get_summary())
        return 0


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Export emails from an Outlook / Exchange Online folder to JSON, HTML or text files.",
    )
    parser.add_argument("--mailbox", help="Mailbox email address (default: signed-in user)")
    parser.add_argument("--folder", help="Folder to export: id, display name or slash-joined path")
    parser.add_argument("--root", help="Only discover folders below this folder id or well-known name")
    parser.add_argument("--archive", action="store_true", help="Export from the In-Place Archive (EWS)")
    parser.add_argument("--count", help="Number of emails to export, 'all' or 0 for every email")
    parser.add_argument("--format", choices=sorted(OUTPUT_FORMATS), help="Output format")
    parser.add_argument("--output-dir", help="Directory for exported files")
    parser.add_argument("--stop-at-target", action="store_true",
                        help="Stop folder discovery as soon as --folder is found")
    parser.add_argument("--list-folders", action="store_true", help="Only list the folders and exit")
    parser.add_argument("--non-interactive", action="store_true", help="Never prompt; use defaults instead")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the Outlook Folder Exporter"""
    print("=" * 80)
    print("OUTLOOK FOLDER EXPORTER")
    print("=" * 80)

    args = build_argument_parser().parse_args(argv)

    try:
        print("\n[1/5] Configuration Validation")
        print("-" * 40)
        config = EmailExporterConfig()
        config.validate_environment(args)

        oauth_client = create_outlook_oauth_client(config.client_id, config.tenant_id, config.token_cache_file)
        session = ExportSession(config, oauth_client)
        exit_code = session.run()
        print("=" * 80)
        return exit_code

    except KeyboardInterrupt:
        print("\n" + "=" * 80)
        print("Script interrupted by user (Ctrl+C)")
        print("=" * 80)
        return 0
    except NotAccessibleError as e:
        print(f"\n❌ Error {e}")
        if e.hint:
            print(f"  {e.hint}")
        return 1
    except ExportError as e:
        print(f"\n❌ Error {e}")
        print("No output files were written for this export.")
        return 1
    except Exception as e:
        print("\n" + "=" * 80)
        print("CRITICAL ERROR: Unexpected error occurred")
        print("-" * 40)
        print(f"❌ Error [unexpected] {type(e).__name__}: {e}")
        print("Please check your configuration and try again.")
        print("If the problem persists, check:")
        print("1. Your .env file contains a valid AZURE_CLIENT_ID")
        print("2. Your internet connection is stable")
        print("3. The output directory and token cache file are writable")
        print("=" * 80)
        return 1


if __name__ == "__main__":
    sys.exit(main())
