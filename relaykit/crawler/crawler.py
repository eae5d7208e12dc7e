"""
crawler.py — Navigate and filter a list of lxml nodes from one document.

A Crawler holds element nodes that all belong to the same document. XPath
filters are evaluated once per node with that node as the context node,
after the expression has been relativized so the crawler behaves as a fake
parent of its nodes:

    crawler = Crawler('<html><body><p class="a">Hi</p></body></html>')
    crawler.filter_xpath('//p').attr('class')        # 'a'
    crawler.filter_xpath('//p').text()               # 'Hi'

Namespace prefixes used in an expression are resolved from manually
registered namespaces first, then from the document itself. The default
namespace is reachable through the "default" prefix.
"""

from __future__ import annotations

import codecs
import html as html_lib
import logging
import re
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union
from urllib.parse import urljoin

from lxml import etree
from lxml import html as lxml_html

from relaykit.crawler.exceptions import InvalidXPathError
from relaykit.crawler.relativize import try_relativize

logger = logging.getLogger("relaykit.crawler")

_UNSET = object()
_EMPTY_LIST = "The current node list is empty."

_PREFIX_PATTERN = re.compile(r"([a-z_][a-z_0-9\-.]*):[^\"/:]", re.IGNORECASE)
_META_CHARSET = re.compile(r"<meta[^>]+charset *= *[\"']?([a-zA-Z\-0-9_:.]+)", re.IGNORECASE)
_MARKUP_TYPE = re.compile(r"(x|ht)ml", re.IGNORECASE)


def _is_element(node: Any) -> bool:
    return isinstance(node, etree._Element) and isinstance(node.tag, str)


def _known_charset(charset: str) -> str:
    try:
        codecs.lookup(charset)
    except LookupError:
        logger.warning(f"Unknown charset {charset!r}, falling back to UTF-8")
        return "UTF-8"
    return charset


class Crawler:
    def __init__(self, node: Any = None, uri: Optional[str] = None, base_href: Optional[str] = None):
        self.uri = uri
        self.base_href = base_href or uri

        self._default_namespace_prefix = "default"
        self._namespaces: Dict[str, str] = {}
        self._document: Optional[etree._Element] = None
        self._nodes: List[etree._Element] = []
        self._is_html = True

        self.add(node)

    # ------------------------------------------------------------------
    # Adding nodes
    # ------------------------------------------------------------------

    def clear(self) -> None:
        self._nodes = []
        self._document = None

    def add(self, node: Any) -> None:
        """Add a node, tree, list of nodes, or markup string."""
        if isinstance(node, Crawler):
            self.add_nodes(list(node))
        elif isinstance(node, etree._ElementTree):
            self.add_document(node)
        elif isinstance(node, etree._Element):
            self.add_node(node)
        elif isinstance(node, (list, tuple)):
            self.add_nodes(node)
        elif isinstance(node, (str, bytes)):
            self.add_content(node)
        elif node is not None:
            raise TypeError(
                "Expecting an lxml element or tree, a list, a string, or None, "
                f"but got {type(node).__name__}."
            )

    def add_content(self, content: Union[str, bytes], type: Optional[str] = None) -> None:
        """
        Add HTML or XML content, picking the parser from the content type.

        The charset comes from the content type, then from a <meta charset>
        tag, then defaults to UTF-8. Bytes are decoded only once it is known.
        """
        # Latin-1 maps every byte, so markup can be sniffed before decoding
        sniffed = content.decode("latin-1") if isinstance(content, bytes) else content

        if not type:
            type = "application/xml" if sniffed.startswith("<?xml") else "text/html"

        markup = _MARKUP_TYPE.search(type)
        if markup is None:
            return

        charset = None
        pos = type.lower().find("charset=")
        if pos != -1:
            charset = type[pos + 8:].split(";", 1)[0].strip()

        if charset is None:
            meta = _META_CHARSET.search(sniffed)
            if meta:
                charset = meta.group(1)

        charset = _known_charset(charset or "UTF-8")
        if isinstance(content, bytes):
            content = content.decode(charset, errors="replace")

        if markup.group(1).lower() == "x":
            self.add_xml_content(content, charset)
        else:
            self.add_html_content(content, charset)

    def add_html_content(self, content: str, charset: str = "UTF-8") -> None:
        charset = _known_charset(charset)
        root = self._parse(content, lxml_html.HTMLParser(encoding=charset), charset)
        if root is None:
            return
        self.add_node(root)

        base = self._filter_relative_xpath("descendant-or-self::base").extract(["href"])
        if base and base[0]:
            self.base_href = urljoin(self.base_href, base[0]) if self.base_href else base[0]

    def add_xml_content(self, content: str, charset: str = "UTF-8") -> None:
        # A lone default namespace would force every expression to use a prefix
        if "xmlns:" not in content:
            content = content.replace("xmlns", "ns")

        charset = _known_charset(charset)

        parser = etree.XMLParser(
            encoding=charset, resolve_entities=False, no_network=True, recover=True
        )
        root = self._parse(content, parser, charset)
        if root is not None:
            self.add_node(root)

        self._is_html = False

    @staticmethod
    def _parse(content: str, parser: etree._FeedParser, charset: str) -> Optional[etree._Element]:
        if not content.strip():
            return None
        data = content.encode(charset, errors="xmlcharrefreplace")
        try:
            return etree.fromstring(data, parser=parser)
        except etree.XMLSyntaxError as e:
            logger.warning(f"Could not parse markup: {e}")
            return None

    def add_document(self, document: etree._ElementTree) -> None:
        root = document.getroot()
        if root is not None:
            self.add_node(root)

    def add_nodes(self, nodes: Iterable[Any]) -> None:
        for node in nodes:
            self.add(node)

    def add_node(self, node: Union[etree._Element, etree._ElementTree]) -> None:
        if isinstance(node, etree._ElementTree):
            node = node.getroot()

        document = node.getroottree().getroot()
        if self._document is not None and self._document is not document:
            raise ValueError("Attaching DOM nodes from multiple documents in the same crawler is forbidden.")

        if self._document is None:
            self._document = document

        if any(existing is node for existing in self._nodes):
            return

        self._nodes.append(node)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def eq(self, position: int) -> Crawler:
        node = self.get_node(position)
        return self._create_sub_crawler(node)

    def each(self, closure: Callable[[Crawler, int], Any]) -> List[Any]:
        """Call closure(sub_crawler, index) for every node and collect the results."""
        return [closure(self._create_sub_crawler(node), i) for i, node in enumerate(self._nodes)]

    def slice(self, offset: int = 0, length: Optional[int] = None) -> Crawler:
        end = None if length is None else offset + length
        return self._create_sub_crawler(self._nodes[offset:end])

    def reduce(self, closure: Callable[[Crawler, int], Any]) -> Crawler:
        """Keep the nodes for which closure does not return False."""
        nodes = [
            node
            for i, node in enumerate(self._nodes)
            if closure(self._create_sub_crawler(node), i) is not False
        ]
        return self._create_sub_crawler(nodes)

    def first(self) -> Crawler:
        return self.eq(0)

    def last(self) -> Crawler:
        return self.eq(len(self._nodes) - 1) if self._nodes else self._create_sub_crawler(None)

    def siblings(self) -> Crawler:
        node = self._first_node()
        parent = node.getparent()
        if parent is None:
            return self._create_sub_crawler(None)
        return self._create_sub_crawler([n for n in parent if n is not node and _is_element(n)])

    def next_all(self) -> Crawler:
        node = self._first_node()
        return self._create_sub_crawler([n for n in node.itersiblings() if _is_element(n)])

    def previous_all(self) -> Crawler:
        node = self._first_node()
        return self._create_sub_crawler([n for n in node.itersiblings(preceding=True) if _is_element(n)])

    def parents(self) -> Crawler:
        """Ancestors of the first node, nearest first."""
        node = self._first_node()
        return self._create_sub_crawler(list(node.iterancestors()))

    def children(self) -> Crawler:
        node = self._first_node()
        return self._create_sub_crawler([n for n in node if _is_element(n)])

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def attr(self, attribute: str) -> Optional[str]:
        return self._first_node().get(attribute)

    def node_name(self) -> str:
        node = self._first_node()
        qname = etree.QName(node)
        return f"{node.prefix}:{qname.localname}" if node.prefix else qname.localname

    def text(self, default: Any = _UNSET) -> str:
        if not self._nodes:
            if default is not _UNSET:
                return default
            raise ValueError(_EMPTY_LIST)
        return "".join(self._nodes[0].itertext())

    def html(self, default: Any = _UNSET) -> str:
        """Markup of the first node's children."""
        if not self._nodes:
            if default is not _UNSET:
                return default
            raise ValueError(_EMPTY_LIST)

        node = self._nodes[0]
        parts = [html_lib.escape(node.text, quote=False)] if node.text else []
        parts.extend(etree.tostring(child, method=self._serialization_method, encoding="unicode") for child in node)
        return "".join(parts)

    def outer_html(self) -> str:
        node = self._first_node()
        return etree.tostring(node, method=self._serialization_method, encoding="unicode", with_tail=False)

    def extract(self, attributes: List[str]) -> List[Any]:
        """
        Extract attribute values from every node.

        "_text" yields the text content and "_name" the node name. With a
        single attribute each entry is a value, otherwise a list of values:

            crawler.filter_xpath('//a').extract(['_text', 'href'])
        """
        data = []
        for node in self._nodes:
            elements = []
            for attribute in attributes:
                if attribute == "_text":
                    elements.append("".join(node.itertext()))
                elif attribute == "_name":
                    elements.append(self._create_sub_crawler(node).node_name())
                else:
                    elements.append(node.get(attribute, ""))
            data.append(elements[0] if len(attributes) == 1 else elements)
        return data

    # ------------------------------------------------------------------
    # XPath
    # ------------------------------------------------------------------

    def evaluate(self, xpath: str) -> Union[Crawler, List[Any]]:
        """
        Evaluate an expression against every node, without relativizing it.

        Node-set results are merged into a new Crawler; anything else
        (numbers, strings, booleans, attribute values) is returned as a list
        with one entry per node.
        """
        if self._document is None:
            raise RuntimeError("Cannot evaluate the expression on an uninitialized crawler.")

        data = self._evaluate_each(xpath)

        if data and all(isinstance(d, list) and all(_is_element(n) for n in d) for d in data):
            return self._create_sub_crawler([n for d in data for n in d])

        return data

    def filter_xpath(self, xpath: str) -> Crawler:
        """
        Filter the nodes with an XPath expression.

        The crawler is a fake parent of its nodes: "div" or "./div" matches
        the div nodes of the crawler itself, not their children.
        """
        result = try_relativize(xpath)
        if not result.valid:
            logger.warning(f"Invalid XPath expression: {xpath}")
            raise InvalidXPathError(xpath)

        # Every branch dropped while relativizing: nothing can match
        if result.expression == "":
            return self._create_sub_crawler(None)

        try:
            return self._filter_relative_xpath(result.expression)
        except InvalidXPathError as e:
            raise InvalidXPathError(xpath) from e.__cause__

    def select_link(self, value: str) -> Crawler:
        """Links by text, or images inside links by alt text."""
        literal = self.xpath_literal(f" {value} ")
        return self._filter_relative_xpath(
            "descendant-or-self::a[contains(concat(' ', normalize-space(string(.)), ' '), {0}) "
            "or ./img[contains(concat(' ', normalize-space(string(@alt)), ' '), {0})]]".format(literal)
        )

    def select_image(self, value: str) -> Crawler:
        return self._filter_relative_xpath(
            "descendant-or-self::img[contains(normalize-space(string(@alt)), {0})]".format(self.xpath_literal(value))
        )

    def select_button(self, value: str) -> Crawler:
        """Buttons by label, value, alt text, id or name."""
        button_type = 'translate(@type, "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz")'
        padded = self.xpath_literal(f" {value} ")
        exact = self.xpath_literal(value)
        return self._filter_relative_xpath(
            "descendant-or-self::input[((contains({0}, \"submit\") or contains({0}, \"button\")) "
            "and contains(concat(' ', normalize-space(string(@value)), ' '), {1})) "
            "or (contains({0}, \"image\") and contains(concat(' ', normalize-space(string(@alt)), ' '), {1})) "
            "or @id={2} or @name={2}] "
            "| descendant-or-self::button[contains(concat(' ', normalize-space(string(.)), ' '), {1}) "
            "or @id={2} or @name={2}]".format(button_type, padded, exact)
        )

    def set_default_namespace_prefix(self, prefix: str) -> None:
        self._default_namespace_prefix = prefix

    def register_namespace(self, prefix: str, namespace: str) -> None:
        self._namespaces[prefix] = namespace

    @staticmethod
    def xpath_literal(s: str) -> str:
        """
        Quote a string for use in an XPath expression.

            xpath_literal('foo " bar')  →  'foo " bar'
            xpath_literal("foo ' bar")  →  "foo ' bar"
            xpath_literal('a\\'b"c')     →  concat('a', "'", 'b"c')
        """
        if "'" not in s:
            return f"'{s}'"
        if '"' not in s:
            return f'"{s}"'

        parts = []
        for i, chunk in enumerate(s.split("'")):
            if i:
                parts.append("\"'\"")
            parts.append(f"'{chunk}'")
        return f"concat({', '.join(parts)})"

    # ------------------------------------------------------------------
    # Node list
    # ------------------------------------------------------------------

    def get_node(self, position: int) -> Optional[etree._Element]:
        if 0 <= position < len(self._nodes):
            return self._nodes[position]
        return None

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[etree._Element]:
        return iter(list(self._nodes))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @property
    def _serialization_method(self) -> str:
        # The HTML serializer treats XML elements named link, br, ... as void tags
        return "html" if self._is_html else "xml"

    def _first_node(self) -> etree._Element:
        if not self._nodes:
            raise ValueError(_EMPTY_LIST)
        return self._nodes[0]

    def _filter_relative_xpath(self, xpath: str) -> Crawler:
        """Filter with an expression already written relative to each node."""
        crawler = self._create_sub_crawler(None)
        if not self._nodes:
            return crawler

        for result in self._evaluate_each(xpath):
            if isinstance(result, list):
                crawler.add_nodes(n for n in result if _is_element(n))

        return crawler

    def _evaluate_each(self, xpath: str) -> List[Any]:
        """Evaluate `xpath` once per node; lxml errors become InvalidXPathError."""
        namespaces = {}
        for prefix in self._find_namespace_prefixes(xpath):
            namespace = self._discover_namespace(prefix)
            if namespace is not None:
                namespaces[prefix] = namespace

        try:
            compiled = etree.XPath(xpath, namespaces=namespaces)
            return [compiled(node) for node in self._nodes]
        except etree.XPathError as e:
            logger.warning(f"Cannot evaluate XPath expression {xpath}: {e}")
            raise InvalidXPathError(xpath) from e

    def _discover_namespace(self, prefix: str) -> Optional[str]:
        if prefix in self._namespaces:
            return self._namespaces[prefix]
        if self._document is None:
            return None

        # Last declaration in document order wins
        key = None if prefix == self._default_namespace_prefix else prefix
        found = None
        for element in self._document.iter(etree.Element):
            namespace = element.nsmap.get(key)
            if namespace is not None:
                found = namespace
        return found

    @staticmethod
    def _find_namespace_prefixes(xpath: str) -> List[str]:
        return list(dict.fromkeys(_PREFIX_PATTERN.findall(xpath)))

    def _create_sub_crawler(self, nodes: Any) -> Crawler:
        crawler = Crawler(nodes, self.uri, self.base_href)
        crawler._is_html = self._is_html
        crawler._document = self._document if crawler._document is None else crawler._document
        crawler._namespaces = dict(self._namespaces)
        crawler._default_namespace_prefix = self._default_namespace_prefix
        return crawler
