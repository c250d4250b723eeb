"""
Field extraction from constellation catalog pages.

Pure functions: HTML in, plain dicts out. Nothing here raises on odd markup;
a field that cannot be found is simply absent from the result.
"""

import re
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup

GO_ASTRONOMY_BASE = "https://www.go-astronomy.com/"
NOIRLAB_BASE = "https://noirlab.edu/public/education/constellations/"

_GO_LINK = re.compile(r"constellations\.php\?Name=", re.I)
_NOIRLAB_LINK = re.compile(r"^/public/education/constellations/([^/]+)/$")

_LATIN_PATTERNS = [
    re.compile(r"Latin\s*name[:\s]*([^\n\r|]+)", re.I),
    re.compile(r"genitive[:\s]*([^\n\r,.]+)", re.I),
]
_ABBREVIATION_PATTERNS = [
    re.compile(r"Abbreviation[:\s]*([A-Z]{2,4})\b", re.I),
    re.compile(r"IAU\s*designation[:\s]*([A-Z]{2,4})\b", re.I),
    re.compile(r"\(([A-Z]{2,4})\)"),
]
_BRIGHTEST_PATTERNS = [
    re.compile(r"brightest\s+star[:\s]*([^\n\r,.]+)", re.I),
    re.compile(r"alpha[:\s]*([^\n\r,.]+)", re.I),
]
_AREA_PATTERNS = [
    re.compile(r"area[:\s]*(\d+(?:\.\d+)?)", re.I),
    re.compile(r"(\d+(?:\.\d+)?)\s*square\s*degrees", re.I),
    re.compile(r"size[:\s]*(\d+(?:\.\d+)?)\s*sq", re.I),
]
_RA_PATTERNS = [
    re.compile(r"right\s*ascension[:\s]*(\d+(?:\.\d+)?)", re.I),
    re.compile(r"\bRA[:\s]*(\d+(?:\.\d+)?)"),
]
_DEC_PATTERNS = [
    re.compile(r"declination[:\s]*([+-]?\d+(?:\.\d+)?)", re.I),
    re.compile(r"\bDec[:\s]*([+-]?\d+(?:\.\d+)?)"),
]
_STAR_COUNT_PATTERNS = [
    re.compile(r"(\d+)\s*stars", re.I),
    re.compile(r"contains[:\s]*(\d+)", re.I),
]

_IMAGE_HINTS = ("constellation", "star")
_STAR_MAP_HINTS = ("map", "chart", "star", "diagram")
_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif")


def _first_match(patterns: list[re.Pattern], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def _to_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _page_text(soup: BeautifulSoup) -> str:
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text(separator="\n")


def extract_go_astronomy_links(html: str) -> list[dict[str, str]]:
    """Constellation name and detail URL for every link on the index page."""
    soup = BeautifulSoup(html, "html.parser")
    links = []
    seen = set()

    for anchor in soup.find_all("a", href=_GO_LINK):
        name = anchor.get_text(strip=True)
        url = urljoin(GO_ASTRONOMY_BASE, anchor["href"])
        if len(name) > 2 and url not in seen:
            seen.add(url)
            links.append({"name": name, "url": url})

    return links


def extract_noirlab_links(html: str) -> list[dict[str, str]]:
    """Constellation name and detail URL for every link on the NOIRLab index."""
    soup = BeautifulSoup(html, "html.parser")
    links = []
    seen = set()

    for anchor in soup.find_all("a", href=True):
        match = _NOIRLAB_LINK.match(anchor["href"])
        if not match:
            continue
        name = anchor.get_text(strip=True)
        url = f"{NOIRLAB_BASE}{match.group(1)}/"
        if len(name) > 2 and url not in seen:
            seen.add(url)
            links.append({"name": name, "url": url})

    return links


def _find_image(soup: BeautifulSoup, hints: tuple[str, ...], base_url: str) -> str | None:
    images = soup.find_all("img", src=True)

    for img in images:
        src = img["src"].lower()
        alt = (img.get("alt") or "").lower()
        if any(h in src for h in hints) or any(h in alt for h in hints):
            return urljoin(base_url, img["src"])

    return None


def extract_image(soup: BeautifulSoup, base_url: str = GO_ASTRONOMY_BASE) -> str | None:
    """Constellation illustration, else the first raster image on the page."""
    found = _find_image(soup, _IMAGE_HINTS, base_url)
    if found:
        return found

    for img in soup.find_all("img", src=True):
        if img["src"].lower().endswith(_IMAGE_EXTENSIONS):
            return urljoin(base_url, img["src"])
    return None


def extract_star_map(soup: BeautifulSoup, base_url: str = GO_ASTRONOMY_BASE) -> str | None:
    return _find_image(soup, _STAR_MAP_HINTS, base_url)


def _extract_story(soup: BeautifulSoup, min_length: int, max_length: int) -> str | None:
    for tag in soup.find_all(["p", "td", "div"]):
        text = re.sub(r"\s+", " ", tag.get_text(" ", strip=True))
        if len(text) >= min_length and not tag.find(["p", "div", "table"]):
            return text[:max_length]
    return None


def _extract_culture(text: str) -> str | None:
    if re.search(r"greek\s+mythology", text, re.I):
        return "Greek"
    if re.search(r"roman\s+mythology", text, re.I):
        return "Roman"
    match = re.search(r"ancient\s+(\w+)", text, re.I)
    if match:
        return match.group(1).capitalize()
    return None


def _extract_hemisphere(text: str) -> str | None:
    if re.search(r"northern\s+hemisphere", text, re.I):
        return "northern"
    if re.search(r"southern\s+hemisphere", text, re.I):
        return "southern"
    if re.search(r"equatorial|both\s+hemispheres", text, re.I):
        return "both"
    return None


def parse_go_astronomy_detail(html: str) -> dict[str, Any]:
    """Fields a go-astronomy detail page yields."""
    soup = BeautifulSoup(html, "html.parser")
    fields: dict[str, Any] = {
        "image_url": extract_image(soup),
        "star_map_url": extract_star_map(soup),
        "story": _extract_story(soup, min_length=200, max_length=800),
    }

    text = _page_text(soup)
    latin = _first_match(_LATIN_PATTERNS, text)
    if latin is None and soup.title and "|" in soup.title.get_text():
        latin = soup.title.get_text().split("|")[0]
    if latin:
        fields["latin_name"] = re.sub(r"\s+", " ", re.sub(r"constellation", "", latin, flags=re.I)).strip()

    fields["abbreviation"] = _first_match(_ABBREVIATION_PATTERNS, text)
    fields["brightest_star"] = _first_match(_BRIGHTEST_PATTERNS, text)
    fields["area"] = _to_float(_first_match(_AREA_PATTERNS, text))
    fields["ra"] = _to_float(_first_match(_RA_PATTERNS, text))
    fields["dec"] = _to_float(_first_match(_DEC_PATTERNS, text))
    star_count = _first_match(_STAR_COUNT_PATTERNS, text)
    fields["star_count"] = int(star_count) if star_count else None
    fields["hemisphere"] = _extract_hemisphere(text)
    fields["culture"] = _extract_culture(text)

    return {k: v for k, v in fields.items() if v not in (None, "")}


def parse_noirlab_detail(html: str) -> dict[str, Any]:
    """Fields a NOIRLab detail page yields; far fewer than go-astronomy."""
    soup = BeautifulSoup(html, "html.parser")
    fields: dict[str, Any] = {
        "story": _extract_story(soup, min_length=200, max_length=600),
        "image_url": extract_image(soup, base_url=NOIRLAB_BASE),
        "culture": "Various",
    }

    match = re.search(r"brightest[^\n]*star[^\n:]*:?\s*([A-Za-z ]+)", _page_text(soup), re.I)
    if match:
        fields["brightest_star"] = match.group(1).strip()

    return {k: v for k, v in fields.items() if v not in (None, "")}
