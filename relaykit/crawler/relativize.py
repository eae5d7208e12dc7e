"""
relativize.py — Rewrite an XPath expression for evaluation against a fake root.

Crawler.filter_xpath() evaluates an expression once per node in the crawler,
using that node as the context node. The crawler itself acts as a fake parent
of its nodes, so an expression written as if it ran from the document root
must be rewritten branch by branch:

    //div            → descendant-or-self::div
    ./span           → self::span
    body             → self::body
    /html            → never matches (the fake root has no document above it)
    parent::*        → never matches (the fake root has no parent or siblings)

Union branches are split on top-level "|" only. Quoted literals are skipped
before brackets are counted, so "[", "]" and "|" inside a string never
affect branch splitting.
"""

from __future__ import annotations

import re
from typing import List, NamedTuple

# Matches nothing; replaces branches that cannot match under the fake root
# while keeping the number of union branches intact.
NON_MATCHING_EXPRESSION = 'a[name() = "b"]'

_WHITESPACE = " \t\n\r\0\x0b"
_SPECIAL_CHARS = re.compile(r"[\"'\[\]|]")
_DETACHED_AXES = re.compile(
    r"^(ancestor|ancestor-or-self|attribute|following|following-sibling"
    r"|namespace|parent|preceding|preceding-sibling)::"
)


class RelativizedXPath(NamedTuple):
    expression: str
    valid: bool


def _span(text: str, chars: str, start: int) -> int:
    """Length of the run of `chars` beginning at `start`."""
    end = start
    while end < len(text) and text[end] in chars:
        end += 1
    return end - start


def _rewrite_branch(expression: str) -> str:
    if expression.startswith("self::*/"):
        expression = "./" + expression[8:]

    if expression == "":
        return NON_MATCHING_EXPRESSION
    if expression.startswith("//"):
        return "descendant-or-self::" + expression[2:]
    if expression.startswith(".//"):
        return "descendant-or-self::" + expression[3:]
    if expression.startswith("./"):
        return "self::" + expression[2:]
    if expression.startswith("child::"):
        return "self::" + expression[7:]
    if expression[0] in "/." or expression.startswith("self::"):
        return NON_MATCHING_EXPRESSION
    if expression.startswith("descendant::"):
        return "descendant-or-self::" + expression[12:]
    if _DETACHED_AXES.match(expression):
        return NON_MATCHING_EXPRESSION
    if not expression.startswith("descendant-or-self::"):
        return "self::" + expression
    return expression


def try_relativize(xpath: str) -> RelativizedXPath:
    """Relativize `xpath`, reporting whether the input could be parsed.

    Blank input gives an empty, valid expression: there is nothing to
    evaluate. An unterminated string literal or unbalanced brackets give
    the input back unchanged with valid=False.
    """
    if not xpath.strip(_WHITESPACE):
        return RelativizedXPath("", True)

    expressions: List[str] = []
    length = len(xpath)
    opened_brackets = 0
    start = _span(xpath, _WHITESPACE, 0)

    i = start
    while i <= length:
        match = _SPECIAL_CHARS.search(xpath, i)
        i = match.start() if match else length

        if i < length:
            char = xpath[i]
            if char in "\"'":
                closing = xpath.find(char, i + 1)
                if closing == -1:
                    return RelativizedXPath(xpath, False)
                i = closing + 1
                continue
            if char == "[":
                opened_brackets += 1
                i += 1
                continue
            if char == "]":
                opened_brackets -= 1
                i += 1
                continue

        # At a "|" or the end of the input
        if opened_brackets:
            i += 1
            continue

        if start < length and xpath[start] == "(":
            # Keep the opening parentheses of a grouped union and rewrite inside them
            j = 1 + _span(xpath, "(" + _WHITESPACE, start + 1)
            parenthesis = xpath[start:start + j]
            start += j
        else:
            parenthesis = ""

        expression = xpath[start:i].rstrip(_WHITESPACE)
        expressions.append(parenthesis + _rewrite_branch(expression))

        if i == length:
            return RelativizedXPath(" | ".join(expressions), True)

        i += _span(xpath, _WHITESPACE, i + 1)
        start = i + 1
        i += 1

    return RelativizedXPath(xpath, False)


def relativize(xpath: str) -> str:
    """Relativized expression, or `xpath` unchanged when it cannot be parsed."""
    return try_relativize(xpath).expression
