#!/usr/bin/env python3
"""
Content Processor Module

Turns exported message bodies into readable plain text for the text transcript
output. HTML bodies are cleaned with BeautifulSoup and converted with html2text;
plain-text bodies only get their whitespace normalized.
"""

import re
from typing import Optional

import html2text
from bs4 import BeautifulSoup

from message_exporter import EmailRecord


class ContentProcessor:
    """Handles body text extraction and cleanup for exported emails"""

    def __init__(self):
        # Configure html2text converter
        self.html_converter = html2text.HTML2Text()
        self.html_converter.ignore_links = False
        self.html_converter.ignore_images = True
        self.html_converter.ignore_emphasis = True
        self.html_converter.body_width = 0  # Don't wrap lines
        self.html_converter.unicode_snob = True

    def convert_html_to_text(self, html_content: str) -> str:
        """
        Convert HTML content to plain text using html2text and BeautifulSoup.

        Args:
            html_content: HTML content to convert

        Returns:
            str: Plain text content
        """
        if not html_content or not html_content.strip():
            return ""

        try:
            soup = BeautifulSoup(html_content, "html.parser")

            # Remove script and style elements
            for element in soup(["script", "style", "head"]):
                element.decompose()

            return self.html_converter.handle(str(soup))

        except Exception as e:
            print(f"Warning: Error converting HTML to text: {str(e)}")
            return BeautifulSoup(html_content, "html.parser").get_text()

    def normalize_whitespace(self, content: str) -> str:
        """
        Standardize line breaks, trim lines and collapse runs of blank lines.

        Unlike a full cleanup, single blank lines are kept so paragraphs stay apart.
        """
        if not content:
            return ""

        content = re.sub(r"\r\n|\r", "\n", content)
        content = re.sub(r"[ \t]+", " ", content)
        lines = [line.strip() for line in content.split("\n")]
        content = "\n".join(lines)
        content = re.sub(r"\n{3,}", "\n\n", content)
        return content.strip()

    def extract_body_text(self, record: EmailRecord) -> Optional[str]:
        """
        Get the readable text of a record's body.

        Falls back to the body preview when there is no body content.

        Returns:
            Optional[str]: Body text, or None when the record has no content at all
        """
        content = record.body.content if record.body else None
        if content:
            if record.body.is_html:
                content = self.convert_html_to_text(content)
            return self.normalize_whitespace(content)

        if record.body_preview:
            return self.normalize_whitespace(record.body_preview)
        return None
