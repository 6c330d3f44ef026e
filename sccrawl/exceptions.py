"""
SC Crawl - Exceptions.

Per-device problems (unreachable hosts, failed logins, command errors)
are reported as values on the DiscoveryResult, never raised. The classes
here cover startup and configuration problems, plus the internal
template error the state machine uses to abandon a parse.
"""

from typing import List, Optional


class SCCrawlError(Exception):
    """Base class for all crawler errors."""


class ConfigError(SCCrawlError):
    """Invalid option value or unreadable config file."""


class CredentialError(SCCrawlError):
    """Credential definition is incomplete or its secret cannot be loaded."""


class TemplateLoadError(SCCrawlError):
    """
    Template directory could not be used.

    Raised when the directory or its index is unreadable, or when not a
    single template loaded. Individual template failures are listed in
    ``errors``.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class ParseTemplateError(SCCrawlError):
    """
    Raised by the state machine when a rule with the Error action fires.

    Caught by OutputParser and turned into zero records for that template.
    """

    def __init__(self, message: str, template_name: str = "", line_number: int = 0):
        super().__init__(message)
        self.template_name = template_name
        self.line_number = line_number
