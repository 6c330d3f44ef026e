"""
SC Crawl - State Machine Templates.

Path: sccrawl/parsing/fsm.py

Template text is written in TextFSM syntax. The textfsm library parses
and validates it (Value lines, state blocks, rule actions, references to
undefined states); the result is then compiled into a small explicit
state graph that this module executes:

    StateMachineTemplate
    ├── captures  Capture(name, pattern, options)
    └── states    State(name, rules)
                  └── Rule(pattern, transition)
                      └── Transition(line_action, record_action, next_state)

The runner keeps an explicit current-state pointer and line cursor.
For each input line the current state's rules are tried top to bottom;
the first match wins unless its line action is Continue, in which case
the scan carries on with the following rules for the same line.
"""

import io
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Pattern, Tuple

import textfsm

from ..exceptions import ParseTemplateError, TemplateLoadError

logger = logging.getLogger(__name__)

START_STATE = "Start"
END_STATE = "End"
EOF_STATE = "EOF"


class ValueOption(str, Enum):
    """Options a Value line may carry."""
    REQUIRED = "Required"
    FILLDOWN = "Filldown"
    FILLUP = "Fillup"
    LIST = "List"
    KEY = "Key"


class LineAction(str, Enum):
    """What happens to the input line after a rule matches."""
    NEXT = "Next"
    CONTINUE = "Continue"
    ERROR = "Error"


class RecordAction(str, Enum):
    """What happens to the row being built after a rule matches."""
    NONE = "NoRecord"
    RECORD = "Record"
    CLEAR = "Clear"
    CLEAR_ALL = "Clearall"


_LINE_ACTIONS = {
    "": LineAction.NEXT,
    "Next": LineAction.NEXT,
    "Continue": LineAction.CONTINUE,
    "Error": LineAction.ERROR,
}

_RECORD_ACTIONS = {
    "": RecordAction.NONE,
    "NoRecord": RecordAction.NONE,
    "Record": RecordAction.RECORD,
    "Clear": RecordAction.CLEAR,
    "Clearall": RecordAction.CLEAR_ALL,
}


@dataclass(frozen=True)
class Capture:
    """A named value the template extracts."""
    name: str
    pattern: str
    options: FrozenSet[ValueOption] = frozenset()

    @property
    def required(self) -> bool:
        return ValueOption.REQUIRED in self.options

    @property
    def filldown(self) -> bool:
        return ValueOption.FILLDOWN in self.options

    @property
    def fillup(self) -> bool:
        return ValueOption.FILLUP in self.options

    @property
    def is_list(self) -> bool:
        return ValueOption.LIST in self.options

    def empty(self) -> Any:
        return [] if self.is_list else None


@dataclass(frozen=True)
class Transition:
    """Action taken when a rule matches."""
    line_action: LineAction = LineAction.NEXT
    record_action: RecordAction = RecordAction.NONE
    next_state: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class Rule:
    """One line pattern inside a state."""
    pattern: Pattern
    transition: Transition
    source_line: int = 0


@dataclass(frozen=True)
class State:
    """Ordered rules evaluated while the machine is in this state."""
    name: str
    rules: Tuple[Rule, ...]


@dataclass(frozen=True)
class StateMachineTemplate:
    """
    Compiled, immutable state-machine template.

    Build with ``StateMachineTemplate.from_text`` and execute with
    ``run``. A template may be shared freely; every run gets its own
    ``StateMachineRunner``.
    """
    name: str
    captures: Tuple[Capture, ...]
    states: Dict[str, State] = field(default_factory=dict)

    @property
    def header(self) -> List[str]:
        return [c.name for c in self.captures]

    @property
    def defines_eof(self) -> bool:
        return EOF_STATE in self.states

    @classmethod
    def from_text(cls, name: str, text: str) -> 'StateMachineTemplate':
        """
        Parse TextFSM template text and compile it.

        Raises:
            TemplateLoadError: The text is not a valid template.
        """
        try:
            parsed = textfsm.TextFSM(io.StringIO(text))
        except textfsm.TextFSMTemplateError as e:
            raise TemplateLoadError(f"Invalid template {name}: {e}") from e

        captures = tuple(
            Capture(
                name=value.name,
                pattern=value.regex,
                options=frozenset(ValueOption(opt) for opt in value.OptionNames()),
            )
            for value in parsed.values
        )

        states: Dict[str, State] = {}
        for state_name in parsed.state_list:
            rules = []
            for fsm_rule in parsed.states[state_name]:
                try:
                    rules.append(_compile_rule(fsm_rule))
                except re.error as e:
                    raise TemplateLoadError(
                        f"Invalid regex in template {name}, state {state_name}: {e}"
                    ) from e
            states[state_name] = State(name=state_name, rules=tuple(rules))

        template = cls(name=name, captures=captures, states=states)
        logger.debug(
            f"Compiled template {name}: {len(captures)} values, "
            f"{len(states)} states"
        )
        return template

    def run(self, text: str) -> List[Dict[str, Any]]:
        """Execute against text and return the emitted rows."""
        return StateMachineRunner(self).run(text)


def _compile_rule(fsm_rule) -> Rule:
    line_action = _LINE_ACTIONS[fsm_rule.line_op]
    record_action = _RECORD_ACTIONS[fsm_rule.record_op]

    next_state = None
    error_message = None
    if line_action is LineAction.ERROR:
        error_message = fsm_rule.new_state.strip('"') or None
    elif fsm_rule.new_state:
        next_state = fsm_rule.new_state

    return Rule(
        pattern=re.compile(fsm_rule.regex),
        transition=Transition(
            line_action=line_action,
            record_action=record_action,
            next_state=next_state,
            error_message=error_message,
        ),
        source_line=fsm_rule.line_num,
    )


class StateMachineRunner:
    """
    Executes one StateMachineTemplate over one input text.

    Holds all mutable parse state: the current state pointer, the line
    cursor, the row being built, remembered Filldown values and the
    emitted rows.
    """

    def __init__(self, template: StateMachineTemplate):
        self.template = template
        self.state_name = START_STATE
        self.line_number = 0
        self.rows: List[Dict[str, Any]] = []
        self._captures = {c.name: c for c in template.captures}
        self._current: Dict[str, Any] = {}
        self._filldown: Dict[str, Any] = {}
        self._clear_all()

    @property
    def stopped(self) -> bool:
        return self.state_name in (END_STATE, EOF_STATE)

    def run(self, text: str) -> List[Dict[str, Any]]:
        """
        Process every line, then flush the final row.

        Raises:
            ParseTemplateError: A rule with the Error action matched.
        """
        for line in text.splitlines():
            self.line_number += 1
            self._process_line(line)
            if self.stopped:
                break

        if self.state_name != END_STATE and not self.template.defines_eof:
            self._record()

        return self.rows

    def _process_line(self, line: str) -> None:
        state = self.template.states[self.state_name]
        for rule in state.rules:
            match = rule.pattern.match(line)
            if not match:
                continue

            for name, value in match.groupdict().items():
                if value is not None and name in self._current:
                    self._assign(name, value)

            transition = rule.transition
            if transition.record_action is RecordAction.RECORD:
                self._record()
            elif transition.record_action is RecordAction.CLEAR:
                self._clear()
            elif transition.record_action is RecordAction.CLEAR_ALL:
                self._clear_all()

            if transition.line_action is LineAction.ERROR:
                message = transition.error_message or "state machine aborted"
                raise ParseTemplateError(
                    f"{self.template.name}: {message} (input line {self.line_number})",
                    template_name=self.template.name,
                    line_number=self.line_number,
                )

            if transition.line_action is LineAction.CONTINUE:
                continue

            if transition.next_state:
                self.state_name = transition.next_state
            return

    def _assign(self, name: str, value: str) -> None:
        capture = self._captures[name]
        if capture.is_list:
            self._current[name].append(value)
        else:
            self._current[name] = value

        if capture.filldown:
            current = self._current[name]
            self._filldown[name] = list(current) if capture.is_list else current

        if capture.fillup:
            for row in reversed(self.rows):
                if row[name]:
                    break
                row[name] = value

    def _record(self) -> None:
        captures = self.template.captures
        if not captures:
            return

        for capture in captures:
            if capture.required and not self._current[capture.name]:
                self._clear()
                return

        if all(not self._current[c.name] for c in captures):
            return

        row = {}
        for capture in captures:
            value = self._current[capture.name]
            if capture.is_list:
                row[capture.name] = list(value)
            else:
                row[capture.name] = value if value is not None else ""
        self.rows.append(row)
        self._clear()

    def _clear(self) -> None:
        for capture in self.template.captures:
            if capture.filldown and capture.name in self._filldown:
                remembered = self._filldown[capture.name]
                self._current[capture.name] = (
                    list(remembered) if capture.is_list else remembered
                )
            else:
                self._current[capture.name] = capture.empty()

    def _clear_all(self) -> None:
        self._filldown = {}
        for capture in self.template.captures:
            self._current[capture.name] = capture.empty()
