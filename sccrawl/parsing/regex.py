"""
SC Crawl - Regex Fallback Templates.

Path: sccrawl/parsing/regex.py

Used when no state-machine template produces a row for a command.
A regex template is an ordered list of patterns with named groups.
Every match of every pattern becomes one row; the group names are
mapped onto output fields. Patterns run multiline and case-insensitive.

YAML form:

    name: cdp_detail_fallback
    commands: ["show cdp neighbors detail"]
    required: [NEIGHBOR_NAME]
    rules:
      - pattern: '^Device ID:\\s*(?P<name>\\S+)'
        fields: {name: NEIGHBOR_NAME}
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Pattern, Tuple

from ..exceptions import TemplateLoadError

logger = logging.getLogger(__name__)

REGEX_FLAGS = re.MULTILINE | re.IGNORECASE


@dataclass(frozen=True)
class RegexRule:
    """A pattern and the mapping from its group names to output fields."""
    pattern: Pattern
    fields: Dict[str, str] = field(default_factory=dict)

    def field_for(self, group: str) -> str:
        return self.fields.get(group, group)


@dataclass(frozen=True)
class RegexTemplate:
    """Ordered regex rules applied to the whole output."""
    name: str
    rules: Tuple[RegexRule, ...]
    required: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'RegexTemplate':
        """
        Build from a YAML mapping.

        Raises:
            TemplateLoadError: Missing name/rules or an invalid pattern.
        """
        name = data.get('name')
        if not name:
            raise TemplateLoadError("Regex template without a name")

        raw_rules = data.get('rules') or []
        if not isinstance(raw_rules, list) or not raw_rules:
            raise TemplateLoadError(f"Regex template {name} has no rules")

        rules = []
        for index, raw in enumerate(raw_rules):
            if isinstance(raw, str):
                raw = {'pattern': raw}
            pattern_text = raw.get('pattern') if isinstance(raw, dict) else None
            if not pattern_text:
                raise TemplateLoadError(f"Regex template {name}: rule {index} has no pattern")
            try:
                pattern = re.compile(pattern_text, REGEX_FLAGS)
            except re.error as e:
                raise TemplateLoadError(f"Regex template {name}: rule {index}: {e}") from e
            if not pattern.groupindex:
                raise TemplateLoadError(
                    f"Regex template {name}: rule {index} has no named groups"
                )
            fields = raw.get('fields') or {}
            if not isinstance(fields, dict):
                raise TemplateLoadError(
                    f"Regex template {name}: rule {index} fields must be a mapping"
                )
            rules.append(RegexRule(pattern=pattern, fields={str(k): str(v) for k, v in fields.items()}))

        required = data.get('required') or ()
        if isinstance(required, str):
            required = (required,)
        elif not isinstance(required, (list, tuple)):
            raise TemplateLoadError(f"Regex template {name}: required must be a list")

        return cls(
            name=name,
            rules=tuple(rules),
            required=tuple(required),
        )

    @property
    def header(self) -> List[str]:
        names: List[str] = []
        for rule in self.rules:
            for group in rule.pattern.groupindex:
                out = rule.field_for(group)
                if out not in names:
                    names.append(out)
        return names

    def run(self, text: str) -> List[Dict[str, Any]]:
        """One row per match, in rule order then match order."""
        rows: List[Dict[str, Any]] = []
        for rule in self.rules:
            for match in rule.pattern.finditer(text):
                row = {
                    rule.field_for(group): value.strip()
                    for group, value in match.groupdict().items()
                    if value is not None
                }
                if all(row.get(req) for req in self.required):
                    rows.append(row)
                else:
                    logger.debug(f"{self.name}: dropped match missing required field")
        return rows
