"""Errors raised while filtering crawler nodes."""


class InvalidXPathError(ValueError):
    """The expression cannot be parsed or evaluated.

    Raised for unterminated string literals, unbalanced brackets, and
    anything lxml rejects, such as an undefined namespace prefix.
    """

    def __init__(self, xpath: str):
        super().__init__(f'Invalid XPath expression: "{xpath}"')
        self.xpath = xpath
