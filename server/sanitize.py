from html.parser import HTMLParser


class _TextExtractor(HTMLParser):
    """Collects text nodes only; tags and comments are dropped."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.parts = []

    def handle_data(self, data):
        self.parts.append(data)


def _strip_markup(text: str) -> str:
    parser = _TextExtractor()
    parser.feed(text)
    parser.close()
    return "".join(parser.parts)


def _sanitize_once(text: str) -> str:
    text = _strip_markup(text).upper()
    text = text.replace("\\'", "'")
    return text.strip()


def sanitize(text) -> str:
    """
    Plain-text, upper-cased rendition of an API text field.

    Escaped markup (&lt;i&gt;...) decodes into real tags on the first pass, so
    passes repeat until the text stops changing. Past the first pass a change
    always drops characters, so the loop ends.
    """
    if text is None:
        return ""
    current = str(text)
    while True:
        cleaned = _sanitize_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned
