"""
SC Crawl - Output Parsing.

State-machine templates (TextFSM syntax) with a regex fallback.

Usage:
    from sccrawl.parsing import OutputParser

    parser = OutputParser()
    neighbors = parser.parse(raw_output, "show lldp neighbors detail")
"""

from .records import NeighborRecord, NeighborProtocol
from .fsm import StateMachineTemplate
from .regex import RegexTemplate
from .registry import TemplateRegistry, ParseTemplate, ParseMethod, normalize_command
from .parser import OutputParser, OutputCleaner, ParseResult

__all__ = [
    'OutputParser',
    'OutputCleaner',
    'ParseResult',
    'TemplateRegistry',
    'ParseTemplate',
    'ParseMethod',
    'StateMachineTemplate',
    'RegexTemplate',
    'NeighborRecord',
    'NeighborProtocol',
    'normalize_command',
]
