"""
Package Resource Helper for SC Crawl.
Provides access to package data in both dev and wheel installations.

Uses importlib.resources which handles:
- Installed wheels
- Editable installs
- Direct source execution
"""

from importlib.resources import files
from pathlib import Path


def get_resource_path(package: str, resource_name: str) -> Path:
    """
    Get a filesystem path to a package resource.

    Args:
        package: Dotted package name, e.g., 'sccrawl'
        resource_name: Resource name, e.g., 'templates'

    Example:
        templates = get_resource_path('sccrawl', 'templates')
    """
    return Path(str(files(package).joinpath(resource_name)))


def get_templates_dir() -> Path:
    """Directory holding the shipped parse templates."""
    return get_resource_path('sccrawl', 'templates')
