from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag


@dataclass(frozen=True)
class ScrapeTemplate:
    """CSS selectors describing one listing page.

    ``link`` defaults to the title element; ``content`` defaults to the whole
    container text. ``date_pattern`` is searched in the container text when
    the date selector finds nothing.
    """

    container: str
    title: str
    link: str | None = None
    date: str | None = None
    content: str | None = None
    date_pattern: str | None = None


def _text(el: Tag | None) -> str:
    if el is None:
        return ""
    return el.get_text(" ", strip=True)


def extract_entries(data: bytes | str, template: ScrapeTemplate, base_url: str) -> list[dict]:
    soup = BeautifulSoup(data, "html.parser")
    records: list[dict] = []
    for container in soup.select(template.container):
        title_el = container.select_one(template.title)
        if title_el is None:
            continue

        link_el = container.select_one(template.link) if template.link else title_el
        href = link_el.get("href") if link_el is not None else None
        url = urljoin(base_url, str(href)) if href else None

        date_text = _text(container.select_one(template.date)) if template.date else ""
        container_text = _text(container)
        if not date_text and template.date_pattern:
            match = re.search(template.date_pattern, container_text)
            if match is not None:
                date_text = match.group(0)

        content = container_text
        if template.content:
            content_el = container.select_one(template.content)
            content = _text(content_el) if content_el is not None else ""

        records.append(
            {
                "title": _text(title_el),
                "url": url,
                "date_text": date_text or None,
                "content": content,
            }
        )
    return records
