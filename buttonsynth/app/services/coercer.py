"""Coercion of model output into a single safe ``<button>`` element.

The model's HTML is never rendered as-is. The first complete ``<button>``
element is located with an HTML parser, its inline style is filtered
against an allow-list, ``data-*`` attributes are kept, and a new element
is serialized with the caller's own label. Everything else the model
produced, including the text inside its button, is discarded.
"""

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Dict, List, Optional, Tuple

from buttonsynth.app.core.config import settings
from buttonsynth.app.core.logging import get_logger
from buttonsynth.app.exceptions import UpstreamError

logger = get_logger(__name__)

ALLOWED_STYLE_PROPERTIES = frozenset((
    "background",
    "background-color",
    "color",
    "font-size",
    "padding",
    "border",
    "border-radius",
    "box-shadow",
    "letter-spacing",
    "text-transform",
    "min-width",
    "min-height",
    "width",
    "height",
))

# Backslashes are rejected too: CSS escapes can spell "url(" without the letters
_UNSAFE_STYLE_VALUE_RE = re.compile(
    r"url\s*\(|!\s*important|expression\s*\(|javascript\s*:|\\",
    re.IGNORECASE,
)

_DATA_ATTRIBUTE_RE = re.compile(r"^data-[a-z0-9_.:-]+$")

BACKGROUND_PROPERTIES = ("background", "background-color")


def escape_html(s: str) -> str:
    """Escape text for use as element content."""
    return (
        str(s)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )


def escape_attr(s: str) -> str:
    """Escape a value for use inside a double-quoted attribute."""
    return (
        str(s)
        .replace("&", "&amp;")
        .replace('"', "&quot;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


@dataclass(frozen=True)
class EmptyLabelStyle:
    """Declarations added so a button without a label stays clickable.

    An empty value turns that fallback off.
    """
    padding: str = "10px 16px"
    border: str = "1px solid #ccc"
    background_color: str = "#f7f7f7"

    @classmethod
    def from_settings(cls) -> "EmptyLabelStyle":
        return cls(
            padding=settings.empty_label_padding,
            border=settings.empty_label_border,
            background_color=settings.empty_label_background,
        )


@dataclass
class SanitizedButton:
    """A button reduced to allow-listed styles, data attributes and a label."""
    label: str
    style_declarations: List[Tuple[str, str]] = field(default_factory=list)
    data_attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def style(self) -> str:
        return "; ".join(f"{prop}: {value}" for prop, value in self.style_declarations)

    def has_property(self, *names: str) -> bool:
        return any(prop in names for prop, _ in self.style_declarations)

    def to_html(self) -> str:
        attrs = []
        if self.style:
            attrs.append(f'style="{escape_attr(self.style)}"')
        for name, value in self.data_attributes.items():
            attrs.append(f'{name}="{escape_attr(value)}"')
        attrs.append('type="button"')
        return f"<button {' '.join(attrs)}>{escape_html(self.label)}</button>"


class _ButtonExtractor(HTMLParser):
    """Collects the attributes of every complete ``<button>`` element.

    A button opens at ``<button`` and closes at the next ``</button>``;
    anything in between, including further ``<button`` tags, is content.
    """

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.buttons: List[List[Tuple[str, Optional[str]]]] = []
        self._open: Optional[List[Tuple[str, Optional[str]]]] = None

    def handle_starttag(self, tag, attrs):
        if tag == "button" and self._open is None:
            self._open = attrs

    def handle_endtag(self, tag):
        if tag == "button" and self._open is not None:
            self.buttons.append(self._open)
            self._open = None


def extract_buttons(html: str) -> List[List[Tuple[str, Optional[str]]]]:
    """Return the attribute lists of all complete buttons in ``html``."""
    parser = _ButtonExtractor()
    parser.feed(html)
    parser.close()
    return parser.buttons


def sanitize_style(style: str) -> List[Tuple[str, str]]:
    """Filter inline style declarations against the allow-list.

    Property names are lower-cased. Declarations with an empty side, a
    property outside the allow-list, or an unsafe value are dropped.
    """
    declarations = []
    for rule in style.split(";"):
        rule = rule.strip()
        if not rule:
            continue
        prop, sep, value = rule.partition(":")
        prop = prop.strip().lower()
        value = value.strip()
        if not sep or not prop or not value:
            continue
        if prop not in ALLOWED_STYLE_PROPERTIES:
            continue
        if _UNSAFE_STYLE_VALUE_RE.search(value):
            continue
        declarations.append((prop, value))
    return declarations


def filter_data_attributes(attrs: List[Tuple[str, Optional[str]]]) -> Dict[str, str]:
    """Keep well-formed ``data-*`` attributes; the first occurrence wins."""
    kept: Dict[str, str] = {}
    for name, value in attrs:
        name = name.lower()
        if not _DATA_ATTRIBUTE_RE.match(name) or name in kept:
            continue
        kept[name] = value or ""
    return kept


def ensure_visible(button: SanitizedButton, defaults: EmptyLabelStyle) -> None:
    """Give an unlabeled button enough style to remain a visible target."""
    if defaults.padding and not button.has_property("padding"):
        button.style_declarations.append(("padding", defaults.padding))
    if defaults.border and not button.has_property("border"):
        button.style_declarations.append(("border", defaults.border))
    if (
        defaults.background_color
        and not button.style_declarations
        and not button.has_property(*BACKGROUND_PROPERTIES)
    ):
        button.style_declarations.append(("background-color", defaults.background_color))


def coerce_button(
    raw_html: str,
    exact_label: str,
    empty_label_style: Optional[EmptyLabelStyle] = None,
) -> SanitizedButton:
    """Reduce model output to one safe button carrying ``exact_label``.

    Args:
        raw_html: HTML fragment returned by the model
        exact_label: Normalized text the button must display
        empty_label_style: Fallback styles for an empty label
            (defaults to the configured values)

    Raises:
        UpstreamError: If no complete ``<button>`` element is present
    """
    buttons = extract_buttons(raw_html)
    if not buttons:
        raise UpstreamError(
            "Model did not return a <button>",
            detail=f"No <button> element in model output: {raw_html[:200]!r}",
        )
    if len(buttons) > 1:
        logger.warning(f"Multiple buttons returned ({len(buttons)}); using first")

    attrs = buttons[0]
    style = next((value or "" for name, value in attrs if name == "style"), "")

    button = SanitizedButton(
        label=exact_label,
        style_declarations=sanitize_style(style),
        data_attributes=filter_data_attributes(attrs),
    )

    if not exact_label.strip():
        ensure_visible(button, empty_label_style or EmptyLabelStyle.from_settings())

    return button

