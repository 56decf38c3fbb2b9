import io
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

MAVEN_NS = 'http://maven.apache.org/POM/4.0.0'

# ElementTree reserves these prefixes for generated names
_RESERVED_PREFIX = re.compile(r'ns\d+$')


def get_default_namespace(elem: ET.Element) -> Optional[str]:
    """
    If the element tag uses a namespace (e.g. '{uri}local'), return the URI.
    Otherwise return None.
    """
    tag = elem.tag
    if isinstance(tag, str) and tag.startswith('{') and '}' in tag:
        return tag[1:tag.index('}')]
    return None


def get_qn_lambda(root: ET.Element):
    """
    Returns a lambda that generates qualified names for the given XML root's namespace.
    """
    ns = get_default_namespace(root)
    return (lambda local: f"{{{ns}}}{local}") if ns else lambda local: local


def local_name(elem: ET.Element) -> str:
    """Tag name without the '{uri}' prefix. Comments and PIs yield ''."""
    tag = elem.tag
    if not isinstance(tag, str):
        return ''
    return tag.split('}', 1)[1] if tag.startswith('{') else tag


def child_text(elem: ET.Element, qn, local: str) -> Optional[str]:
    """Trimmed text of the first direct child named `local`, or None when absent or empty."""
    child = elem.find(qn(local))
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


def read_pom(pom_path):
    tree = ET.parse(pom_path)
    root = tree.getroot()
    return root


@dataclass
class PomDocument:
    """A parsed POM plus the raw text around the root element.

    ElementTree drops the XML declaration and anything outside the root element,
    so those are kept verbatim and glued back on when serializing.
    """
    root: ET.Element
    prolog: str
    epilog: str
    namespaces: dict[str, str]


def _prolog_end(text: str) -> int:
    """Index of the root element's opening '<' (after declaration, comments and doctype)."""
    pos = 0
    while True:
        start = text.find('<', pos)
        if start < 0:
            return len(text)
        if text.startswith('<?', start):
            pos = text.index('?>', start) + 2
        elif text.startswith('<!--', start):
            pos = text.index('-->', start) + 3
        elif text.startswith('<!', start):
            pos = text.index('>', start) + 1
        else:
            return start


def read_pom_document(pom_path) -> PomDocument:
    """Parse a POM keeping comments, processing instructions and namespace prefixes.

    Raises ET.ParseError on malformed XML and OSError when the file cannot be read.
    """
    text = Path(pom_path).read_text(encoding='utf-8')
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True, insert_pis=True))
    parser.feed(text)
    root = parser.close()

    namespaces: dict[str, str] = {}
    for _, (prefix, uri) in ET.iterparse(io.StringIO(text), events=['start-ns']):
        namespaces.setdefault(prefix, uri)

    prolog = text[:_prolog_end(text)]
    closing = None
    for closing in re.finditer(r'</(?:[\w.-]+:)?%s\s*>' % re.escape(local_name(root)), text):
        pass
    epilog = text[closing.end():] if closing else ''
    return PomDocument(root=root, prolog=prolog, epilog=epilog, namespaces=namespaces)


def serialize_pom(doc: PomDocument) -> str:
    """Render a PomDocument back to text with its original prolog and prefixes."""
    for prefix, uri in doc.namespaces.items():
        if _RESERVED_PREFIX.match(prefix):
            continue
        # the document's own prefixes, with '' as the default namespace, so ElementTree
        # writes xmlns="..." on the root instead of ns0: prefixed tags
        ET.register_namespace(prefix, uri)
    body = ET.tostring(doc.root, encoding='unicode')
    return f"{doc.prolog}{body}{doc.epilog}"
