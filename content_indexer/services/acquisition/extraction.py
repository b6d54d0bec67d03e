"""
Main-content extraction from HTML.

Used by both the static and the rendered page strategies, so a page
yields the same text whichever way it was fetched.

Steps:
------
1. Remove non-content elements by tag name (scripts, navigation,
   headers, footers, forms...).
2. Remove elements whose class / id / role marks them as chrome. Real
   markup rarely uses <nav> consistently; "site-header", "main-menu",
   "cookie-consent", "share-buttons" are far more common.
3. Try the structural selectors in order and accept the first one whose
   text is longer than MIN_CANDIDATE_CHARS; near-empty wrappers are
   skipped. Fall back to <body> when every candidate is too short.
4. Collapse whitespace, keeping block elements as paragraphs separated
   by a blank line.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup, Tag


NON_CONTENT_TAGS = [
    "script", "style", "noscript", "template", "iframe", "svg", "canvas",
    "nav", "header", "footer", "aside", "form", "button", "dialog",
]

# Matched against each class token and the id, e.g. "site-header",
# "navbar", "main-menu", "breadcrumbs", "share_buttons", "ad-slot"
CHROME_PATTERN = re.compile(
    r"(?:^|[-_])"
    r"(?:nav|navbar|navigation|menu|sidebar|header|footer|breadcrumbs?|"
    r"share|sharing|social|cookies?|consent|gdpr|banner|advert\w*|ads?|promo|newsletter|popup|modal)"
    r"(?:$|[-_])",
    re.IGNORECASE,
)

CHROME_ROLES = {"navigation", "banner", "complementary", "contentinfo", "search", "dialog"}

# Never removed by attribute rules; these *are* the content candidates
PROTECTED_TAGS = {"html", "body", "main", "article"}

CONTENT_SELECTORS = [
    "main article",
    "article",
    'main [role="main"]',
    '[role="main"]',
    "main .content",
    "main .post-content",
    "main .article-content",
    ".post-content",
    ".article-content",
    ".entry-content",
    ".markdown-body",
    "#content",
    "main",
]

MIN_CANDIDATE_CHARS = 100

BLOCK_TAGS = [
    "p", "div", "section", "li", "pre", "blockquote", "table", "tr",
    "h1", "h2", "h3", "h4", "h5", "h6", "dd", "dt", "figcaption", "br", "hr",
]

# Private-use character marking block boundaries until whitespace is collapsed
_BLOCK_MARK = "\ue000"


def is_chrome(tag: Tag) -> bool:
    """True if class / id / role mark the element as page chrome."""
    if tag.name in PROTECTED_TAGS or tag.attrs is None:
        return False

    role = (tag.get("role") or "").lower()
    if role in CHROME_ROLES:
        return True

    element_id = tag.get("id") or ""
    if isinstance(element_id, str) and CHROME_PATTERN.search(element_id):
        return True

    classes = tag.get("class") or []
    return any(CHROME_PATTERN.search(cls) for cls in classes)


def strip_non_content(soup: BeautifulSoup) -> None:
    """Remove chrome elements from the document in place."""
    for element in soup(NON_CONTENT_TAGS):
        element.decompose()

    for element in soup.find_all(is_chrome):
        if element.decomposed:
            continue
        # A chrome-looking wrapper around the article is a layout div
        if element.find(["main", "article"]) is not None:
            continue
        element.decompose()


def element_text(element: Tag) -> str:
    """Text of an element with block structure preserved as paragraphs."""
    for block in element.find_all(BLOCK_TAGS):
        block.append(_BLOCK_MARK)

    return normalize_whitespace(element.get_text(" "))


def normalize_whitespace(text: str) -> str:
    text = re.sub(r"\s+", " ", text)
    text = re.sub(rf"\s*{_BLOCK_MARK}[\s{_BLOCK_MARK}]*", "\n\n", text)
    return text.strip()


def select_main_content(soup: BeautifulSoup, min_chars: int = MIN_CANDIDATE_CHARS) -> str:
    """Text of the first structural candidate longer than min_chars, else of <body>."""
    for selector in CONTENT_SELECTORS:
        candidate = soup.select_one(selector)
        if candidate is None:
            continue
        text = _text_of_copy(candidate)
        if len(text) > min_chars:
            return text

    body: Optional[Tag] = soup.body
    return element_text(body if body is not None else soup)


def extract_main_text(html: str) -> str:
    """Normalized main-content text of an HTML document."""
    soup = BeautifulSoup(html, "lxml")
    strip_non_content(soup)
    return select_main_content(soup)


def _text_of_copy(element: Tag) -> str:
    # Block markers are appended in place; work on a copy so a rejected
    # candidate leaves no markers behind for the next selector
    return element_text(BeautifulSoup(str(element), "lxml"))
