#!/usr/bin/env python3
"""
html_export.py - Self-contained HTML export for report widgets

Widgets are folium/branca figures. Saving one goes through an ordered ladder
of strategies; the first that succeeds wins:

1. self_contained             - render with decorations, inline every asset
2. self_contained_undecorated - same, without the extra styling
3. lib_directory              - write assets to a lib/ folder, then try to
                                inline them; if that fails, copy the HTML and
                                lib/ to the destination (not self-contained)

Nothing here raises to the caller: the outcome is an ExportResult.
"""

import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union
from urllib.parse import urlparse

import requests
from branca.element import Element, Figure
from bs4 import BeautifulSoup
from loguru import logger

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/121.0.0.0 Safari/537.36"
    ),
}

BROWSER_CANDIDATES = [
    "chromium",
    "chromium-browser",
    "google-chrome",
    "google-chrome-stable",
    "chrome",
    "msedge",
]

Fetcher = Callable[[str], str]


class ExportError(Exception):
    """Raised by a single export strategy when it cannot produce its output."""


@dataclass
class HtmlWidget:
    """A renderable report widget.

    ``build`` returns a fresh branca Figure each call. ``decorations`` are
    raw HTML snippets (usually <style> blocks) added to the document head
    when rendering decorated output.
    """

    build: Callable[[], Figure]
    decorations: List[str] = field(default_factory=list)

    def render(self, decorated: bool = True) -> str:
        figure = self.build()
        if decorated:
            for i, snippet in enumerate(self.decorations):
                figure.header.add_child(Element(snippet), name=f"decoration_{i}")
        return figure.render()


@dataclass
class ExportResult:
    """Outcome of export_widget."""

    path: Path
    ok: bool = False
    strategy: Optional[str] = None
    self_contained: bool = False
    errors: List[str] = field(default_factory=list)


def is_remote(url: str) -> bool:
    return url.startswith("//") or urlparse(url).scheme in ("http", "https")


def fetch_asset(url: str, timeout: int = 30) -> str:
    """Download a script or stylesheet as text."""
    if url.startswith("//"):
        url = "https:" + url
    try:
        resp = requests.get(url, headers=HEADERS, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise ExportError(f"Could not fetch {url}: {e}") from e
    return resp.text


def asset_fetcher(timeout: int = 30) -> Fetcher:
    """HTTP fetcher for export_widget using the given request timeout."""

    def fetch(url: str) -> str:
        return fetch_asset(url, timeout=timeout)

    return fetch


def _local_reader(base_dir: Path) -> Fetcher:
    def read(url: str) -> str:
        return (base_dir / url).read_text(encoding="utf-8")

    return read


def _asset_tags(soup: BeautifulSoup):
    for tag in soup.find_all("script", src=True):
        yield tag, "src"
    for tag in soup.find_all("link", href=True):
        if "stylesheet" in (tag.get("rel") or []):
            yield tag, "href"


def external_asset_urls(html: str) -> List[str]:
    """URLs of scripts and stylesheets still referenced rather than inlined."""
    soup = BeautifulSoup(html, "html.parser")
    return [tag[attr] for tag, attr in _asset_tags(soup)]


def inline_assets(
    html: str, fetch: Fetcher, include: Callable[[str], bool] = lambda url: True
) -> str:
    """Replace <script src> and stylesheet <link> tags with inline content.

    Args:
        html: Rendered document
        fetch: Returns the text of an asset given its URL
        include: Only URLs passing this test are inlined

    Returns:
        Document with the selected assets inlined
    """
    soup = BeautifulSoup(html, "html.parser")

    for tag, attr in list(_asset_tags(soup)):
        url = tag[attr]
        if not include(url):
            continue

        content = fetch(url)
        if tag.name == "script":
            replacement = soup.new_tag("script")
        else:
            replacement = soup.new_tag("style")
        replacement.string = content
        tag.replace_with(replacement)

    return str(soup)


def localize_assets(html: str, lib_dir: Path, fetch: Fetcher) -> str:
    """Download remote assets into ``lib_dir`` and point the document at them.

    Assets that cannot be fetched keep their original URL.
    """
    soup = BeautifulSoup(html, "html.parser")
    lib_dir.mkdir(parents=True, exist_ok=True)

    for i, (tag, attr) in enumerate(list(_asset_tags(soup))):
        url = tag[attr]
        if not is_remote(url):
            continue

        name = Path(urlparse(url).path).name or f"asset_{i}"
        local_name = f"{i:02d}_{name}"
        try:
            (lib_dir / local_name).write_text(fetch(url), encoding="utf-8")
        except Exception as e:
            logger.warning(f"    ⚠️ Keeping remote asset {url}: {e}")
            continue

        tag[attr] = f"{lib_dir.name}/{local_name}"

    return str(soup)


def set_document_title(html: str, title: Optional[str]) -> str:
    """Set the <title> of a rendered document."""
    if not title:
        return html

    soup = BeautifulSoup(html, "html.parser")
    if soup.title is None:
        head = soup.head
        if head is None:
            head = soup.new_tag("head")
            if soup.html is not None:
                soup.html.insert(0, head)
            else:
                soup.insert(0, head)
        head.insert(0, soup.new_tag("title"))
    soup.title.string = title
    return str(soup)


def _write_self_contained(
    widget: HtmlWidget, path: Path, title: Optional[str], fetch: Fetcher, decorated: bool
) -> ExportResult:
    html = widget.render(decorated=decorated)
    html = inline_assets(html, fetch)
    html = set_document_title(html, title)
    path.write_text(html, encoding="utf-8")

    strategy = "self_contained" if decorated else "self_contained_undecorated"
    return ExportResult(path=path, ok=True, strategy=strategy, self_contained=True)


def _write_with_lib_directory(
    widget: HtmlWidget, path: Path, title: Optional[str], fetch: Fetcher
) -> ExportResult:
    with tempfile.TemporaryDirectory() as tmp:
        tmp_dir = Path(tmp)
        tmp_html = tmp_dir / path.name
        lib_dir = tmp_dir / "lib"

        html = widget.render(decorated=False)
        html = localize_assets(html, lib_dir, fetch)
        html = set_document_title(html, title)
        tmp_html.write_text(html, encoding="utf-8")

        try:
            inlined = inline_assets(
                tmp_html.read_text(encoding="utf-8"),
                _local_reader(tmp_dir),
                include=lambda url: not is_remote(url),
            )
        except Exception as e:
            logger.warning(f"  ⚠️ Could not inline local assets: {e}")
            shutil.copyfile(tmp_html, path)
            if lib_dir.exists():
                shutil.copytree(lib_dir, path.parent / "lib", dirs_exist_ok=True)
            logger.warning("  ⚠️ WARNING: Could not create self-contained HTML")
            logger.warning(f"     Dependencies copied to {path.parent / 'lib'}")
            return ExportResult(path=path, ok=True, strategy="lib_directory", self_contained=False)

        path.write_text(inlined, encoding="utf-8")

        remaining = external_asset_urls(inlined)
        if remaining:
            logger.warning(
                f"  ⚠️ Output still references {len(remaining)} remote assets (not self-contained)"
            )
        return ExportResult(
            path=path, ok=True, strategy="lib_directory", self_contained=not remaining
        )


def export_widget(
    widget: HtmlWidget,
    path: Union[str, Path],
    title: Optional[str] = None,
    fetcher: Optional[Fetcher] = None,
) -> ExportResult:
    """
    Save a widget as a single HTML file, falling back step by step.

    Args:
        widget: Widget to save
        path: Destination HTML path
        title: Document title
        fetcher: Asset downloader (defaults to fetch_asset over HTTP)

    Returns:
        ExportResult describing which strategy produced the file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fetch = fetcher or fetch_asset

    strategies = [
        ("self_contained", lambda: _write_self_contained(widget, path, title, fetch, True)),
        (
            "self_contained_undecorated",
            lambda: _write_self_contained(widget, path, title, fetch, False),
        ),
        ("lib_directory", lambda: _write_with_lib_directory(widget, path, title, fetch)),
    ]

    logger.info(f"💾 Saving {path.name}")
    errors: List[str] = []

    for name, strategy in strategies:
        try:
            result = strategy()
        except Exception as e:
            logger.warning(f"  ⚠️ {name} export failed: {e}")
            errors.append(f"{name}: {e}")
            continue

        result.errors = errors
        if result.self_contained:
            logger.success(f"  ✅ Saved self-contained HTML using {name}: {path}")
        else:
            logger.warning(f"  ⚠️ Saved non-self-contained HTML using {name}: {path}")
        return result

    logger.error(f"❌ All export approaches failed for {path}")
    return ExportResult(path=path, ok=False, errors=errors)


def find_browser(preferred: Optional[str] = None) -> Optional[str]:
    """Locate a Chromium-family browser for screenshots."""
    candidates: Sequence[str] = [preferred] if preferred else BROWSER_CANDIDATES
    for candidate in candidates:
        found = shutil.which(candidate)
        if found:
            return found
        if Path(candidate).exists():
            return str(candidate)
    return None


def screenshot_html(
    html_path: Union[str, Path],
    png_path: Union[str, Path],
    zoom: float = 2,
    browser: Optional[str] = None,
    window_size: str = "1200,900",
) -> bool:
    """
    Rasterize an HTML file to PNG with a headless browser.

    Args:
        html_path: Exported HTML file
        png_path: Destination PNG
        zoom: Device scale factor
        browser: Browser executable; searched on PATH when None
        window_size: Viewport as "width,height" in CSS pixels

    Returns:
        Success status
    """
    html_path = Path(html_path).resolve()
    png_path = Path(png_path).resolve()

    executable = find_browser(browser)
    if executable is None:
        logger.warning(f"⚠️ No headless browser found, skipping screenshot {png_path.name}")
        return False

    cmd = [
        executable,
        "--headless",
        "--disable-gpu",
        "--hide-scrollbars",
        f"--force-device-scale-factor={zoom}",
        f"--window-size={window_size}",
        f"--screenshot={png_path}",
        html_path.as_uri(),
    ]
    logger.debug(f"  📸 {' '.join(cmd)}")

    try:
        subprocess.run(cmd, check=True, capture_output=True, timeout=120)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
        logger.warning(f"⚠️ Screenshot failed for {html_path.name}: {e}")
        return False

    if not png_path.exists():
        logger.warning(f"⚠️ Browser finished but {png_path.name} was not written")
        return False

    logger.success(f"  ✅ Saved screenshot: {png_path}")
    return True
