"""
In-process page model used by the client-side engine.

Elements carry text, inner HTML, attributes, a class list and inline
styles, and dispatch DOM-style events (bubbling to ancestors). The
document resolves simple CSS selectors, tracks the current path, emits
navigation events for client-side route changes and relays named custom
signals raised by the host application.
"""

import html
import logging
import re
from html.parser import HTMLParser
from typing import Callable, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[["Event"], None]

_COMPOUND_RE = re.compile(
    r"(?P<tag>^[a-zA-Z][\w-]*|^\*)"
    r"|#(?P<id>[\w-]+)"
    r"|\.(?P<cls>[\w-]+)"
    r"|\[\s*(?P<attr>[\w-]+)\s*(?:(?P<op>[~^$*]?=)\s*"
    r"(?:\"(?P<dq>[^\"]*)\"|'(?P<sq>[^']*)'|(?P<val>[^\]\s\"']*))\s*)?\]"
)


class SelectorError(ValueError):
    """Selector string could not be parsed."""


class Event:
    """Event delivered to listeners."""

    def __init__(self, type: str, target: Optional["Element"] = None, detail=None):
        self.type = type
        self.target = target
        self.detail = detail
        self.propagation_stopped = False

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


class _EventTarget:
    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def add_event_listener(self, event_type: str, listener: Listener) -> None:
        handlers = self._listeners.setdefault(event_type, [])
        if listener not in handlers:
            handlers.append(listener)

    def remove_event_listener(self, event_type: str, listener: Listener) -> None:
        handlers = self._listeners.get(event_type, [])
        if listener in handlers:
            handlers.remove(listener)

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    def _notify(self, event: Event) -> None:
        for listener in list(self._listeners.get(event.type, [])):
            listener(event)


VOID_TAGS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "source", "track", "wbr",
})


def parse_style(text: str) -> Dict[str, str]:
    """``"color: red; margin: 0"`` -> ``{"color": "red", "margin": "0"}``."""
    style = {}
    for decl in text.split(";"):
        prop, sep, value = decl.partition(":")
        if sep and prop.strip():
            style[prop.strip()] = value.strip()
    return style


class Element(_EventTarget):
    """
    A node of the page model.

    Mixed content follows ElementTree: ``text`` is the character data before
    the first child, each child's ``tail`` is the data that follows it.
    """

    def __init__(self, tag: str, attributes: Optional[Dict[str, str]] = None, text: str = ""):
        super().__init__()
        self.tag = tag.lower()
        self.attributes: Dict[str, str] = dict(attributes or {})
        self.style: Dict[str, str] = {}
        self.children: List["Element"] = []
        self.parent: Optional["Element"] = None
        self.text = text
        self.tail = ""

    def __repr__(self) -> str:
        ident = f"#{self.id}" if self.id else ""
        return f"<Element {self.tag}{ident}>"

    # Tree -------------------------------------------------------------
    def append(self, child: "Element") -> "Element":
        child.parent = self
        self.children.append(child)
        return child

    def clear(self) -> None:
        """Detach every child and drop all content."""
        for child in self.children:
            child.parent = None
        self.children = []
        self.text = ""

    def iter_descendants(self) -> Iterator["Element"]:
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def ancestors(self) -> Iterator["Element"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    # Content ----------------------------------------------------------
    @property
    def id(self) -> Optional[str]:
        return self.attributes.get("id")

    @property
    def text_content(self) -> str:
        return self.text + "".join(c.text_content + c.tail for c in self.children)

    @text_content.setter
    def text_content(self, value: str) -> None:
        self.clear()
        self.text = value

    @property
    def inner_html(self) -> str:
        return html.escape(self.text, quote=False) + "".join(
            c.outer_html + html.escape(c.tail, quote=False) for c in self.children
        )

    @inner_html.setter
    def inner_html(self, value: str) -> None:
        """Replace the content with live elements parsed from markup."""
        self.clear()
        builder = _FragmentBuilder(self)
        builder.feed(value)
        builder.close()

    @property
    def outer_html(self) -> str:
        attrs = "".join(f' {k}="{html.escape(v)}"' for k, v in self.attributes.items())
        if self.style:
            attrs += f' style="{self.style_text}"'
        if self.tag in VOID_TAGS and not self.children and not self.text:
            return f"<{self.tag}{attrs}>"
        return f"<{self.tag}{attrs}>{self.inner_html}</{self.tag}>"

    @property
    def style_text(self) -> str:
        return "; ".join(f"{k}: {v}" for k, v in self.style.items())

    # Attributes and classes ------------------------------------------
    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name] = str(value)

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)

    @property
    def class_list(self) -> List[str]:
        return self.attributes.get("class", "").split()

    def add_class(self, name: str) -> None:
        classes = self.class_list
        if name not in classes:
            classes.append(name)
        self.attributes["class"] = " ".join(classes)

    def remove_class(self, name: str) -> None:
        classes = [c for c in self.class_list if c != name]
        if classes:
            self.attributes["class"] = " ".join(classes)
        else:
            self.attributes.pop("class", None)

    def has_class(self, name: str) -> bool:
        return name in self.class_list

    # Events -----------------------------------------------------------
    def dispatch_event(self, event: Event) -> None:
        """Deliver to this element, then bubble to ancestors."""
        if event.target is None:
            event.target = self
        self._notify(event)
        for node in self.ancestors():
            if event.propagation_stopped:
                break
            node._notify(event)

    def click(self) -> None:
        self.dispatch_event(Event("click", self))

    def submit(self) -> None:
        self.dispatch_event(Event("submit", self))


class _FragmentBuilder(HTMLParser):
    """Builds child elements of ``root`` from an HTML fragment."""

    def __init__(self, root: Element):
        super().__init__(convert_charrefs=True)
        self.stack = [root]

    def _open(self, tag: str, attrs) -> Element:
        attributes = {k: v or "" for k, v in attrs}
        style = attributes.pop("style", None)
        element = self.stack[-1].append(Element(tag, attributes))
        if style:
            element.style.update(parse_style(style))
        return element

    def handle_starttag(self, tag, attrs):
        element = self._open(tag, attrs)
        if element.tag not in VOID_TAGS:
            self.stack.append(element)

    def handle_startendtag(self, tag, attrs):
        self._open(tag, attrs)

    def handle_endtag(self, tag):
        # unmatched closing tags are ignored, like a browser would
        for depth in range(len(self.stack) - 1, 0, -1):
            if self.stack[depth].tag == tag:
                del self.stack[depth:]
                return

    def handle_data(self, data):
        current = self.stack[-1]
        if current.children:
            current.children[-1].tail += data
        else:
            current.text += data


def _parse_compound(part: str) -> List[dict]:
    tokens = []
    pos = 0
    while pos < len(part):
        m = _COMPOUND_RE.match(part, pos)
        if not m:
            raise SelectorError(f"Unsupported selector: {part!r}")
        tok = {k: v for k, v in m.groupdict().items() if v is not None}
        for quoted in ("dq", "sq"):
            if quoted in tok:
                tok["val"] = tok.pop(quoted)
        tokens.append(tok)
        pos = m.end()
    return tokens


def _matches_compound(element: Element, tokens: List[dict]) -> bool:
    for tok in tokens:
        if "tag" in tok:
            if tok["tag"] != "*" and element.tag != tok["tag"].lower():
                return False
        elif "id" in tok:
            if element.id != tok["id"]:
                return False
        elif "cls" in tok:
            if not element.has_class(tok["cls"]):
                return False
        elif "attr" in tok:
            actual = element.get_attribute(tok["attr"])
            if actual is None:
                return False
            op, val = tok.get("op"), tok.get("val", "")
            if op == "=" and actual != val:
                return False
            if op == "~=" and val not in actual.split():
                return False
            if op == "^=" and not actual.startswith(val):
                return False
            if op == "$=" and not actual.endswith(val):
                return False
            if op == "*=" and val not in actual:
                return False
    return True


def _matches_chain(element: Element, chain: List[List[dict]]) -> bool:
    """Descendant-combinator match, right to left."""
    if not _matches_compound(element, chain[-1]):
        return False
    remaining = chain[:-1]
    node = element.parent
    while remaining and node is not None:
        if _matches_compound(node, remaining[-1]):
            remaining = remaining[:-1]
        node = node.parent
    return not remaining


def _split_outside(text: str, is_sep: Callable[[str], bool]) -> List[str]:
    """Split on separator characters that are not inside [...] or quotes."""
    parts, buf = [], []
    quote, depth = None, 0
    for ch in text:
        if quote:
            if ch == quote:
                quote = None
        elif ch in "\"'" and depth:
            quote = ch
        elif ch == "[":
            depth += 1
        elif ch == "]" and depth:
            depth -= 1
        elif not depth and is_sep(ch):
            parts.append("".join(buf))
            buf = []
            continue
        buf.append(ch)
    if quote or depth:
        raise SelectorError(f"Unbalanced brackets or quotes in {text!r}")
    parts.append("".join(buf))
    return parts


def compile_selector(selector: str) -> List[List[List[dict]]]:
    groups = [g.strip() for g in _split_outside(selector, lambda ch: ch == ",")]
    if not selector.strip() or any(not g for g in groups):
        raise SelectorError(f"Empty selector in {selector!r}")
    return [
        [_parse_compound(p) for p in _split_outside(g, str.isspace) if p]
        for g in groups
    ]


class Document(_EventTarget):
    """
    Root of the page model.

    ``navigate`` changes the current path and emits a ``navigation`` event,
    mirroring a client-side route change. ``raise_signal`` relays a named
    custom signal from the host application to its subscribers.
    """

    def __init__(self, path: str = "/"):
        super().__init__()
        self.path = path
        self.body = Element("body")
        self._signals: Dict[str, List[Listener]] = {}

    def create_element(
        self,
        tag: str,
        parent: Optional[Element] = None,
        text: str = "",
        **attributes: str,
    ) -> Element:
        """Create an element and attach it (to body by default). Use ``class_`` for class."""
        if "class_" in attributes:
            attributes["class"] = attributes.pop("class_")
        element = Element(tag, attributes, text=text)
        (parent or self.body).append(element)
        return element

    def query_selector_all(self, selector: str) -> List[Element]:
        groups = compile_selector(selector)
        return [
            el for el in self.body.iter_descendants()
            if any(_matches_chain(el, chain) for chain in groups)
        ]

    def query_selector(self, selector: str) -> Optional[Element]:
        found = self.query_selector_all(selector)
        return found[0] if found else None

    def navigate(self, path: str) -> None:
        """Client-side navigation: update the path and notify listeners."""
        logger.debug(f"Navigating {self.path} -> {path}")
        self.path = path
        self._notify(Event("navigation", detail=path))

    def on_signal(self, name: str, listener: Listener) -> None:
        handlers = self._signals.setdefault(name, [])
        if listener not in handlers:
            handlers.append(listener)

    def raise_signal(self, name: str, detail=None) -> None:
        for listener in list(self._signals.get(name, [])):
            listener(Event(name, detail=detail))

    def signal_subscribers(self, name: str) -> int:
        return len(self._signals.get(name, []))
