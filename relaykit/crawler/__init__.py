"""
crawler — XPath filtering over lxml node lists.

Key pieces:
    Crawler           Node list from one document, filtered with relativized XPath
    relativize        Rewrite an expression so the crawler acts as a fake root
    try_relativize    Same, returning RelativizedXPath(expression, valid)
"""

from relaykit.crawler.crawler import Crawler
from relaykit.crawler.exceptions import InvalidXPathError
from relaykit.crawler.relativize import (
    NON_MATCHING_EXPRESSION,
    RelativizedXPath,
    relativize,
    try_relativize,
)

__all__ = [
    "Crawler",
    "InvalidXPathError",
    "NON_MATCHING_EXPRESSION",
    "RelativizedXPath",
    "relativize",
    "try_relativize",
]
