"""
SC Crawl - Output Parser.

Path: sccrawl/parsing/parser.py

Turns raw CLI output into NeighborRecords. For a command the parser
tries its state-machine templates in registration order and takes the
first that yields rows; when none do it falls back to the command's
regex templates the same way.

Parsing device output never raises. Broken or unexpected output gives
an empty list; only template loading (at construction) can fail.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..exceptions import ParseTemplateError
from .records import NeighborRecord, protocol_for_command, rows_to_neighbors
from .registry import ParseMethod, TemplateRegistry

logger = logging.getLogger(__name__)


@dataclass
class ParseResult:
    """Result of parsing CLI output."""
    success: bool
    template_name: Optional[str] = None
    method: Optional[ParseMethod] = None
    records: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None

    @property
    def record_count(self) -> int:
        return len(self.records) if self.records else 0


class OutputCleaner:
    """Clean raw CLI output before template parsing."""

    ANSI_PATTERN = re.compile(r'\x1b\[[0-9;?]*[A-Za-z]|\x1b[()][A-Za-z0-9]|\x1b[=>]')
    CONTROL_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

    # Patterns to skip at start of output
    PREAMBLE_PATTERNS = [
        r'^terminal\s+(length|width|pager)',
        r'^set\s+cli\s+screen-(length|width)',
        r'^pagination\s+disabled',
        r'^screen-length\s+disable',
        r'^\s*$',
    ]

    # Command echo pattern
    COMMAND_ECHO_PATTERN = r'^[\w\-\.]+[\#\>\$\)].*?(show|display|get)\s+'

    # Trailing prompt pattern
    TRAILING_PROMPT_PATTERN = r'^[\w\-\.]+(\([\w\-]+\))?[\#\>\$]\s*$'

    @classmethod
    def normalize(cls, raw_output: str) -> str:
        """CRLF/CR to LF, drop ANSI sequences and control characters."""
        text = raw_output.replace('\r\n', '\n').replace('\r', '\n')
        text = cls.ANSI_PATTERN.sub('', text)
        return cls.CONTROL_PATTERN.sub('', text)

    @classmethod
    def clean(cls, raw_output: str) -> str:
        """
        Clean raw CLI output for parsing.

        Removes:
        - Terminal escape sequences and control characters
        - Preamble lines (terminal length, pagination messages)
        - Command echo (hostname#show command)
        - Trailing prompts
        """
        lines = cls.normalize(raw_output).split('\n')
        cleaned_lines = []
        found_output_start = False

        for line in lines:
            line_stripped = line.strip()

            if not found_output_start:
                is_preamble = any(
                    re.match(p, line_stripped, re.IGNORECASE)
                    for p in cls.PREAMBLE_PATTERNS
                )
                if is_preamble:
                    continue

                found_output_start = True
                if re.match(cls.COMMAND_ECHO_PATTERN, line_stripped, re.IGNORECASE):
                    continue

            if re.match(cls.TRAILING_PROMPT_PATTERN, line_stripped):
                continue

            cleaned_lines.append(line.rstrip())

        while cleaned_lines and not cleaned_lines[-1].strip():
            cleaned_lines.pop()

        return '\n'.join(cleaned_lines)


class OutputParser:
    """
    Template-driven CLI output parser.

    Example:
        parser = OutputParser()
        for neighbor in parser.parse(output, "show cdp neighbors detail"):
            print(neighbor.neighbor_name, neighbor.local_interface)
    """

    def __init__(
        self,
        template_dir: Optional[Union[str, Path]] = None,
        registry: Optional[TemplateRegistry] = None,
    ):
        """
        Initialize parser.

        Args:
            template_dir: Template directory. Defaults to the shipped templates.
            registry: Pre-loaded registry (template_dir is ignored when given).

        Raises:
            TemplateLoadError: No template could be loaded.
        """
        self.registry = registry if registry is not None else TemplateRegistry.load(template_dir)
        logger.debug(f"OutputParser initialized with {len(self.registry)} templates")

    @property
    def template_count(self) -> int:
        return len(self.registry)

    def parse(self, raw_text: str, command: str) -> List[NeighborRecord]:
        """Parse neighbor output into NeighborRecords (possibly empty)."""
        result = self.parse_records(raw_text, command)
        if not result.success:
            return []
        return rows_to_neighbors(result.records or [], protocol_for_command(command))

    def parse_records(
        self,
        raw_text: str,
        command: str,
        clean_output: bool = True,
    ) -> ParseResult:
        """
        Parse CLI output into raw template rows.

        Args:
            raw_text: Raw CLI output from device.
            command: Command that produced the output.
            clean_output: Clean output before parsing (default True).

        Returns:
            ParseResult naming the template and method that produced rows.
        """
        if not raw_text or not raw_text.strip():
            return ParseResult(success=False, error="Empty output")

        text = OutputCleaner.clean(raw_text) if clean_output else raw_text

        for method in (ParseMethod.STATE_MACHINE, ParseMethod.REGEX):
            for template in self.registry.templates_for(command, method):
                try:
                    rows = template.run(text)
                except ParseTemplateError as e:
                    logger.debug(f"Template {template.name} aborted: {e}")
                    continue

                logger.debug(
                    f"parse() {template.name} ({method.value}) returned {len(rows)} rows"
                )
                if rows:
                    return ParseResult(
                        success=True,
                        template_name=template.name,
                        method=method,
                        records=rows,
                    )

        return ParseResult(
            success=False,
            error=f"No template produced records for: {command}",
        )
