"""
HtmlParserImpl 的 pytest 测试套件
"""

import pytest

from tarantula.crawl.infrastructure.html_parser_impl import HtmlParserImpl

BASE = "https://example.com/docs/index.html"


@pytest.fixture
def parser():
    return HtmlParserImpl()


class TestExtractLinks:

    def test_relative_links_resolved_against_base(self, parser):
        html = '<a href="guide.html">g</a><a href="/about">a</a><a href="//cdn.example.org/x">c</a>'

        assert parser.extract_links(html, BASE) == [
            "https://example.com/docs/guide.html",
            "https://example.com/about",
            "https://cdn.example.org/x",
        ]

    def test_skips_non_document_links(self, parser):
        html = """
            <a href="#top">anchor</a>
            <a href="javascript:void(0)">js</a>
            <a href="JavaScript:alert(1)">js2</a>
            <a href="mailto:a@b.com">mail</a>
            <a href="tel:123">tel</a>
            <a href="data:text/plain,hi">data</a>
            <a href="ftp://example.com/file">ftp</a>
            <a href="">empty</a>
            <a>no href</a>
            <a href="/ok">ok</a>
        """

        assert parser.extract_links(html, BASE) == ["https://example.com/ok"]

    def test_dedup_preserves_order(self, parser):
        html = '<a href="/b">1</a><a href="/a">2</a><a href="/b#x">3</a><a href="HTTPS://EXAMPLE.COM/a">4</a>'

        assert parser.extract_links(html, BASE) == [
            "https://example.com/b",
            "https://example.com/a",
        ]

    def test_links_are_normalized(self, parser):
        html = '<a href="http://Example.com:80/path#frag">x</a>'
        assert parser.extract_links(html, BASE) == ["http://example.com/path"]

    def test_malformed_href_ignored(self, parser):
        html = '<a href="http://example.com:99999/">bad</a><a href="/good">good</a>'
        assert parser.extract_links(html, BASE) == ["https://example.com/good"]

    @pytest.mark.parametrize("html, base", [("", BASE), ("<a href='/x'>x</a>", ""), (None, BASE)])
    def test_empty_input(self, parser, html, base):
        assert parser.extract_links(html, base) == []

    def test_broken_markup_still_parsed(self, parser):
        html = '<div><a href="/one">one<p><a href="/two">two</div>'
        assert parser.extract_links(html, BASE) == [
            "https://example.com/one",
            "https://example.com/two",
        ]
