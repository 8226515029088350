from politecrawl.crawler.handlers import HandlerContext, RegisteredHandler, html_link_parser, normalize_url


PAGE = """
<html><body>
  <a href="/about">About</a>
  <a href="page2.html#section">Page 2</a>
  <a href="#top">Top</a>
  <a href="mailto:someone@example.com">Mail</a>
  <a href="https://OTHER.example/x">Other</a>
  <a href="/about">About again</a>
</body></html>
"""


def context(content=PAGE):
    return HandlerContext(url="https://example.com/dir/index.html", content=content,
                          content_type="text/html", status_code=200)


def test_html_link_parser_resolves_and_deduplicates():
    links = html_link_parser()(context())
    assert links == [
        "https://example.com/about",
        "https://example.com/dir/page2.html",
        "https://other.example/x",
    ]


def test_html_link_parser_hostname_filter():
    links = html_link_parser(["example.com"])(context())
    assert "https://other.example/x" not in links
    assert len(links) == 2


def test_html_link_parser_handles_missing_content():
    assert html_link_parser()(context(content=None)) == []


def test_normalize_url_drops_fragment():
    assert normalize_url("https://Example.COM/a?b=1#c") == "https://example.com/a?b=1"


def test_registered_handler_content_type_matching():
    html_only = RegisteredHandler(handler=lambda c: None, content_type="text/html")
    assert html_only.accepts("text/html; charset=utf-8")
    assert not html_only.accepts("application/json")
    assert not html_only.accepts(None)
    assert RegisteredHandler(handler=lambda c: None).accepts(None)
