"""
test_relativize.py — Rewriting XPath expressions for a fake root context
"""

import pytest

from relaykit.crawler import NON_MATCHING_EXPRESSION, RelativizedXPath, relativize, try_relativize


class TestRelativizeBranches:
    @pytest.mark.parametrize("xpath, expected", [
        ("//div", "descendant-or-self::div"),
        (".//div", "descendant-or-self::div"),
        ("./span", "self::span"),
        ("child::p", "self::p"),
        ("descendant::p", "descendant-or-self::p"),
        ("descendant-or-self::p", "descendant-or-self::p"),
        ("self::*/a", "self::a"),
        ("body", "self::body"),
        ("*", "self::*"),
    ])
    def test_rewrites(self, xpath, expected):
        assert relativize(xpath) == expected

    @pytest.mark.parametrize("xpath", [
        "/html",
        "/",
        ".",
        "..",
        "self::a",
        "parent::*",
        "ancestor::div",
        "ancestor-or-self::div",
        "attribute::href",
        "following::p",
        "following-sibling::p",
        "namespace::*",
        "preceding::p",
        "preceding-sibling::p",
    ])
    def test_never_matching_branches(self, xpath):
        assert relativize(xpath) == NON_MATCHING_EXPRESSION


class TestRelativizeUnions:
    def test_union(self):
        assert relativize("./span | //a") == "self::span | descendant-or-self::a"

    def test_union_without_spaces(self):
        assert relativize("//a|//b") == "descendant-or-self::a | descendant-or-self::b"

    def test_dropped_branch_keeps_arity(self):
        assert relativize("//a | /b") == f"descendant-or-self::a | {NON_MATCHING_EXPRESSION}"

    def test_trailing_empty_branch(self):
        assert relativize("//a |") == f"descendant-or-self::a | {NON_MATCHING_EXPRESSION}"

    def test_surrounding_whitespace(self):
        assert relativize("  //a  ") == "descendant-or-self::a"

    def test_parenthesized_union(self):
        assert relativize("(//a | //div)//img") == "(descendant-or-self::a | descendant-or-self::div)//img"

    def test_nested_parentheses_with_spaces(self):
        assert relativize("( ( //a | //div )//img | //ul )") == (
            "( ( descendant-or-self::a | descendant-or-self::div )//img | descendant-or-self::ul )"
        )

    def test_pipe_inside_predicate_is_not_a_separator(self):
        assert relativize("//a[b|c]") == "descendant-or-self::a[b|c]"

    def test_pipe_inside_string_is_not_a_separator(self):
        assert relativize("//a[@title='x | y'] | //b") == (
            "descendant-or-self::a[@title='x | y'] | descendant-or-self::b"
        )

    def test_bracket_inside_string_is_not_counted(self):
        assert relativize('//a[contains(., "]")] | //b') == (
            'descendant-or-self::a[contains(., "]")] | descendant-or-self::b'
        )


class TestRelativizeEdgeCases:
    def test_empty(self):
        assert relativize("") == ""
        assert try_relativize("") == RelativizedXPath("", True)

    def test_whitespace_only(self):
        assert relativize("  \n") == ""

    def test_unterminated_quote_returns_input(self):
        xpath = "//a[@href='it\\'s']"

        assert relativize(xpath) == xpath
        assert try_relativize(xpath) == RelativizedXPath(xpath, False)

    def test_unbalanced_bracket_is_invalid(self):
        assert try_relativize("//a[@id").valid is False

    def test_valid_result_flag(self):
        result = try_relativize("//div")

        assert result.valid is True
        assert result.expression == "descendant-or-self::div"

    def test_already_relative_input_is_valid(self):
        assert try_relativize("descendant-or-self::div") == RelativizedXPath("descendant-or-self::div", True)

    @pytest.mark.parametrize("xpath", [
        "//div",
        ".//a | //b[@id='x']",
        "descendant::p",
        "(//a | //div)//img",
    ])
    def test_idempotent_on_descendant_branches(self, xpath):
        once = relativize(xpath)
        assert relativize(once) == once
