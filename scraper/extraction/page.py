"""Captured listing page handed to the extraction strategies."""

from __future__ import annotations

from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Comment

_NON_VISIBLE = {"script", "style", "noscript", "template"}


@dataclass
class ListingPage:
    """Rendered HTML of a listing page plus what the browser saw of it.

    ``body_text`` is the visible text reported by the browser; when a page is
    built from raw HTML (tests, replays) it falls back to the parsed body text.
    """

    html: str
    url: str
    title: str = ""
    body_text: str = ""
    _soup: BeautifulSoup | None = field(default=None, init=False, repr=False)

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self.html or "", "html.parser")
        return self._soup

    @property
    def page_title(self) -> str:
        if self.title:
            return self.title.strip()
        tag = self.soup.find("title")
        return tag.get_text(strip=True) if tag else ""

    @property
    def text(self) -> str:
        if self.body_text:
            return self.body_text
        body = self.soup.body or self.soup
        strings = (
            s.strip()
            for s in body.find_all(string=True)
            if s.parent.name not in _NON_VISIBLE and not isinstance(s, Comment)
        )
        self.body_text = " ".join(s for s in strings if s)
        return self.body_text

    def meta_content(self, *names: str) -> str:
        """First non-empty ``<meta>`` content matching a ``property`` or ``name``."""
        for name in names:
            for attr in ("property", "name"):
                tag = self.soup.find("meta", attrs={attr: name})
                if tag and tag.get("content", "").strip():
                    return tag["content"].strip()
        return ""

    @property
    def meta_description(self) -> str:
        return self.meta_content("og:description", "description", "twitter:description")
