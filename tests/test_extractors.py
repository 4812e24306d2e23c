"""Tests for static HTML asset extraction."""

from __future__ import annotations

from libprobe.extractors import Asset, AssetKind, extract_html_assets, get_attr, resolve_asset_urls


class TestGetAttr:
    """Attribute parsing from a single start tag."""

    def test_quoting_styles(self) -> None:
        assert get_attr('<script src="/a.js">', "src") == "/a.js"
        assert get_attr("<script src='/b.js'>", "src") == "/b.js"
        assert get_attr("<script src=/c.js defer>", "src") == "/c.js"

    def test_case_and_spacing(self) -> None:
        assert get_attr('<SCRIPT SRC = " /d.js ">', "src") == "/d.js"

    def test_missing_or_empty(self) -> None:
        assert get_attr("<script async>", "src") is None
        assert get_attr('<script src="">', "src") is None


class TestExtractHtmlAssets:
    """Script and stylesheet discovery."""

    def test_scripts_then_stylesheets(self) -> None:
        html = """
        <html><head>
        <link rel="stylesheet" href='/css/site.css'>
        <script src="/js/app.js"></script>
        <script>window.inline = true;</script>
        <link rel=icon href=/favicon.ico>
        <link href=/print.css?v=2 media=print>
        <link rel="preload" href="/font.woff2" as="font">
        <link rel="alternate stylesheet" href="/dark">
        </head></html>
        """
        assert extract_html_assets(html) == [
            Asset(url="/js/app.js", kind=AssetKind.SCRIPT),
            Asset(url="/css/site.css", kind=AssetKind.STYLE),
            Asset(url="/print.css?v=2", kind=AssetKind.STYLE),
            Asset(url="/dark", kind=AssetKind.STYLE),
        ]

    def test_empty_document(self) -> None:
        assert extract_html_assets("") == []
        assert extract_html_assets("<p>no assets</p>") == []

    def test_css_href_with_fragment(self) -> None:
        assets = extract_html_assets('<link href="/theme.css#v1">')
        assert assets == [Asset(url="/theme.css#v1", kind=AssetKind.STYLE)]


class TestResolveAssetUrls:
    """Resolution against the page URL."""

    def test_resolution(self) -> None:
        assets = [
            Asset(url="//cdn.example.net/x.js", kind=AssetKind.SCRIPT),
            Asset(url="rel/y.css", kind=AssetKind.STYLE),
            Asset(url="http://[bad/z.js", kind=AssetKind.SCRIPT),
        ]
        assert resolve_asset_urls(assets, "https://example.com/docs/page") == [
            "https://cdn.example.net/x.js",
            "https://example.com/docs/rel/y.css",
        ]
