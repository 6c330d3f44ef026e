"""
SC Crawl - Module Entry Point.

Allows running the crawler as a module:
    python -m sccrawl crawl <seeds...>
    python -m sccrawl parse "show cdp neighbors detail" capture.txt
    python -m sccrawl templates
"""

import sys

from sccrawl.discovery.cli import main

if __name__ == '__main__':
    sys.exit(main())
