"""SC Crawl utilities."""
