"""
SC Crawl - Template Registry.

Path: sccrawl/parsing/registry.py

Loads parse templates once from a template directory and indexes them by
normalized command text. The directory carries an ``index.yaml``:

    state_machine:
      - template: cisco_ios_show_cdp_neighbors_detail.textfsm
        commands:
          - show cdp neighbors detail
    regex:
      - file: regex_templates.yaml      # YAML list of regex templates
      - name: inline_example            # or an inline template
        commands: [show lldp neighbors detail]
        rules: [...]

A template that fails to load is logged and recorded in ``errors``; the
registry only refuses to exist when nothing at all could be loaded.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..exceptions import TemplateLoadError
from ..utils.resource_helper import get_templates_dir
from .fsm import StateMachineTemplate
from .regex import RegexTemplate

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.yaml"


class ParseMethod(str, Enum):
    """Parsing method, in the order they are tried."""
    STATE_MACHINE = "state_machine"
    REGEX = "regex"


@dataclass(frozen=True)
class ParseTemplate:
    """A loaded template and the commands it applies to."""
    name: str
    commands: Tuple[str, ...]
    method: ParseMethod
    definition: Union[StateMachineTemplate, RegexTemplate]

    def run(self, text: str) -> List[Dict[str, Any]]:
        return self.definition.run(text)


def normalize_command(command: str) -> str:
    """Lowercase and collapse whitespace: 'Show  CDP nei' -> 'show cdp nei'."""
    return re.sub(r'\s+', ' ', (command or '').strip().lower())


class TemplateRegistry:
    """
    Immutable collection of ParseTemplates keyed by command.

    Example:
        registry = TemplateRegistry.load()
        for template in registry.templates_for("show lldp neighbors detail"):
            print(template.name, template.method.value)
    """

    def __init__(self, templates: Optional[List[ParseTemplate]] = None,
                 errors: Optional[List[str]] = None,
                 source: Optional[Path] = None):
        self._templates: List[ParseTemplate] = list(templates or [])
        self._by_command: Dict[str, List[ParseTemplate]] = {}
        self.errors: List[str] = list(errors or [])
        self.source = source

        for template in self._templates:
            for command in template.commands:
                self._by_command.setdefault(command, []).append(template)

    def __len__(self) -> int:
        return len(self._templates)

    @property
    def templates(self) -> List[ParseTemplate]:
        return list(self._templates)

    @property
    def commands(self) -> List[str]:
        return sorted(self._by_command)

    def templates_for(self, command: str,
                      method: Optional[ParseMethod] = None) -> List[ParseTemplate]:
        """Templates registered for a command, in registration order."""
        found = self._by_command.get(normalize_command(command), [])
        if method is not None:
            found = [t for t in found if t.method == method]
        return list(found)

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def load(cls, template_dir: Optional[Union[str, Path]] = None) -> 'TemplateRegistry':
        """
        Load every template listed in the directory's index.

        Args:
            template_dir: Directory with index.yaml. Defaults to the
                          templates shipped with the package.

        Raises:
            TemplateLoadError: Directory or index unreadable, or zero
                               templates loaded.
        """
        directory = Path(template_dir) if template_dir else get_templates_dir()
        index_path = directory / INDEX_FILENAME

        if not directory.is_dir():
            raise TemplateLoadError(f"Template directory not found: {directory}")

        try:
            index = yaml.safe_load(index_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise TemplateLoadError(f"Cannot read template index {index_path}: {e}") from e

        if not isinstance(index, dict):
            raise TemplateLoadError(f"Template index {index_path} must be a mapping")

        templates: List[ParseTemplate] = []
        errors: List[str] = []

        for section in ('state_machine', 'regex'):
            if not isinstance(index.get(section) or [], list):
                raise TemplateLoadError(f"Template index {index_path}: '{section}' must be a list")

        for entry in index.get('state_machine') or []:
            try:
                templates.append(cls._load_state_machine(directory, entry))
            except TemplateLoadError as e:
                logger.warning(str(e))
                errors.append(str(e))

        for entry in index.get('regex') or []:
            try:
                templates.extend(cls._load_regex_entry(directory, entry, errors))
            except TemplateLoadError as e:
                logger.warning(str(e))
                errors.append(str(e))

        if not templates:
            raise TemplateLoadError(
                f"No usable templates in {directory}", errors=errors
            )

        logger.debug(
            f"Loaded {len(templates)} templates from {directory} "
            f"({len(errors)} errors)"
        )
        return cls(templates, errors=errors, source=directory)

    @staticmethod
    def _commands(entry: Dict[str, Any], name: str) -> Tuple[str, ...]:
        commands = entry.get('commands') or []
        if isinstance(commands, str):
            commands = [commands]
        if not isinstance(commands, list) or not all(isinstance(c, str) for c in commands):
            raise TemplateLoadError(f"Template {name}: commands must be strings")
        normalized = tuple(normalize_command(c) for c in commands if c)
        if not normalized:
            raise TemplateLoadError(f"Template {name} lists no commands")
        return normalized

    @classmethod
    def _load_state_machine(cls, directory: Path, entry: Any) -> ParseTemplate:
        if not isinstance(entry, dict):
            raise TemplateLoadError(f"Template entry {entry!r} needs 'template' and 'commands'")
        filename = entry.get('template')
        if not filename:
            raise TemplateLoadError("State machine entry without 'template'")

        path = directory / filename
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise TemplateLoadError(f"Cannot read template {path}: {e}") from e

        name = entry.get('name') or path.stem
        return ParseTemplate(
            name=name,
            commands=cls._commands(entry, name),
            method=ParseMethod.STATE_MACHINE,
            definition=StateMachineTemplate.from_text(name, text),
        )

    @classmethod
    def _load_regex_entry(cls, directory: Path, entry: Any,
                          errors: List[str]) -> List[ParseTemplate]:
        if not isinstance(entry, dict):
            raise TemplateLoadError(f"Regex entry must be a mapping: {entry!r}")

        if 'file' not in entry:
            return [cls._regex_template(entry)]

        path = directory / entry['file']
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or []
        except (OSError, yaml.YAMLError) as e:
            raise TemplateLoadError(f"Cannot read regex templates {path}: {e}") from e

        if isinstance(data, dict):
            data = data.get('templates') or []
        if not isinstance(data, list):
            raise TemplateLoadError(f"Regex templates in {path} must be a list")

        loaded = []
        for item in data:
            try:
                loaded.append(cls._regex_template(item))
            except TemplateLoadError as e:
                message = f"{path.name}: {e}"
                logger.warning(message)
                errors.append(message)
        return loaded

    @classmethod
    def _regex_template(cls, data: Any) -> ParseTemplate:
        if not isinstance(data, dict):
            raise TemplateLoadError(f"Regex template must be a mapping: {data!r}")
        definition = RegexTemplate.from_dict(data)
        return ParseTemplate(
            name=definition.name,
            commands=cls._commands(data, definition.name),
            method=ParseMethod.REGEX,
            definition=definition,
        )
