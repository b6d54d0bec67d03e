"""
Tests for main-content extraction.
"""

from bs4 import BeautifulSoup

from content_indexer.services.acquisition.extraction import (
    extract_main_text,
    is_chrome,
    normalize_whitespace,
)


ARTICLE_BODY = (
    "Hybrid retrieval combines a keyword index with a vector index. "
    "Each list is ranked on its own and the ranks are fused afterwards."
)


def page(body: str) -> str:
    return f"<html><head><title>t</title><script>var x = 1;</script></head><body>{body}</body></html>"


class TestExtractMainText:

    def test_prefers_article(self):
        html = page(
            "<nav>Home | Blog | About</nav>"
            f"<article><h1>Fusion</h1><p>{ARTICLE_BODY}</p></article>"
            "<footer>Copyright 2026</footer>"
        )

        text = extract_main_text(html)

        assert "Hybrid retrieval" in text
        assert "Home | Blog" not in text
        assert "Copyright" not in text

    def test_drops_scripts_and_styles(self):
        html = page(f"<style>p {{ color: red; }}</style><main><p>{ARTICLE_BODY}</p></main>")

        text = extract_main_text(html)

        assert "var x" not in text
        assert "color" not in text
        assert text.startswith("Hybrid retrieval")

    def test_drops_chrome_by_class(self):
        html = page(
            '<div class="site-header">Subscribe now</div>'
            '<div class="cookie-consent">We use cookies</div>'
            f"<div class=\"post-content\"><p>{ARTICLE_BODY}</p></div>"
            '<div class="share-buttons">Share on social</div>'
        )

        text = extract_main_text(html)

        assert "Hybrid retrieval" in text
        assert "Subscribe" not in text
        assert "cookies" not in text
        assert "Share on" not in text

    def test_short_candidate_falls_back_to_body(self):
        html = page(
            "<article>Too short</article>"
            f"<div><p>{ARTICLE_BODY}</p></div>"
        )

        text = extract_main_text(html)

        assert "Too short" in text
        assert "Hybrid retrieval" in text

    def test_paragraphs_separated_by_blank_line(self):
        html = page(f"<article><p>{ARTICLE_BODY}</p><p>Second paragraph.</p></article>")

        text = extract_main_text(html)

        assert text.endswith("afterwards.\n\nSecond paragraph.")

    def test_chrome_wrapper_around_article_is_kept(self):
        html = page(f'<div class="layout-sidebar"><article><p>{ARTICLE_BODY}</p></article></div>')

        assert "Hybrid retrieval" in extract_main_text(html)

    def test_empty_document(self):
        assert extract_main_text("") == ""


class TestIsChrome:

    def tag(self, markup: str):
        return BeautifulSoup(markup, "lxml").find(["div", "main", "section"])

    def test_class_token(self):
        assert is_chrome(self.tag('<div class="main-menu">x</div>'))

    def test_id(self):
        assert is_chrome(self.tag('<div id="breadcrumbs">x</div>'))

    def test_role(self):
        assert is_chrome(self.tag('<div role="navigation">x</div>'))

    def test_content_class_is_not_chrome(self):
        assert not is_chrome(self.tag('<div class="entry-content">x</div>'))

    def test_word_containing_pattern_is_not_chrome(self):
        # "adsorption" contains "ads" but not as a token
        assert not is_chrome(self.tag('<div class="adsorption">x</div>'))

    def test_main_is_protected(self):
        assert not is_chrome(self.tag('<main class="navigation">x</main>'))


def test_normalize_whitespace():
    assert normalize_whitespace("  a \n\t b  ") == "a b"
