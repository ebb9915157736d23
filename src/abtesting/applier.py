"""Apply a variant's change-set to page elements."""

import logging
from typing import Iterable

from .dom import Document, Element
from .schema import ChangeSet

logger = logging.getLogger(__name__)


def apply_to_element(element: Element, changes: ChangeSet) -> None:
    """
    Apply changes to one element.

    Order: text, inner HTML, inline styles, attributes (None removes),
    class additions, class removals. Applying the same change-set twice
    leaves the element as applying it once.
    """
    if changes.text is not None:
        element.text_content = changes.text
    if changes.html is not None:
        element.inner_html = changes.html
    for prop, value in changes.styles:
        element.style[prop] = value
    for name, value in changes.attributes:
        if value is None:
            element.remove_attribute(name)
        else:
            element.set_attribute(name, value)
    for name in changes.add_classes:
        element.add_class(name)
    for name in changes.remove_classes:
        element.remove_class(name)


def apply_changes(elements: Iterable[Element], changes: ChangeSet) -> None:
    for element in elements:
        apply_to_element(element, changes)


def apply_variant(document: Document, selector: str, changes: ChangeSet) -> int:
    """Apply changes to every element matching selector. Returns the match count."""
    elements = document.query_selector_all(selector)
    if not elements:
        logger.warning(f"No elements found for selector: {selector}")
        return 0
    apply_changes(elements, changes)
    return len(elements)
