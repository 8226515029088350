from politecrawl.crawler.fetcher import FetchResult
from politecrawl.crawler.handlers import RegisteredHandler
from politecrawl.crawler.operation import CrawlOperation
from politecrawl.crawler.robots import RobotsCache, RobotsChecker
from politecrawl.crawler.url_list import CrawlUrl, ErrorCode, FifoUrlList

from conftest import EventRecorder, ListUrlList, StubFetcher, run


AGENT = "mybot/1.1"


def make_operation(url_list, fetcher, handlers=(), recorder=None):
    checker = RobotsChecker(RobotsCache(fetcher, ttl=3600))
    emit = None
    if recorder is not None:
        emit = lambda event, *args: recorder.events.append((event, args))
    return CrawlOperation(url_list, fetcher, checker, AGENT, handlers=handlers, emit=emit)


def test_denied_candidate_is_recorded_but_never_fetched(stub_fetcher, recorder):
    url_list = ListUrlList(["https://example.com/index17.html"])
    outcome = run(make_operation(url_list, stub_fetcher, recorder=recorder).run())

    assert outcome.error_code is ErrorCode.ROBOTS_NOT_ALLOWED
    assert stub_fetcher.count("https://example.com/index17.html") == 0
    assert url_list.inserted == [outcome]
    assert recorder.named("crawl_url") == [("https://example.com/index17.html",)]
    assert recorder.named("crawled_url") == [(outcome,)]


def test_allowed_candidate_is_fetched_once(stub_fetcher):
    url_list = ListUrlList(["https://example.com/index18.html"])
    outcome = run(make_operation(url_list, stub_fetcher).run())

    assert outcome.error_code is None
    assert outcome.status_code == 200
    assert outcome.content == "<html></html>"
    assert stub_fetcher.count("https://example.com/index18.html") == 1
    assert url_list.inserted == [outcome]


def test_empty_source_records_nothing(stub_fetcher, recorder):
    url_list = ListUrlList([])
    assert run(make_operation(url_list, stub_fetcher, recorder=recorder).run()) is None

    assert url_list.inserted == []
    assert stub_fetcher.calls == []
    assert recorder.named("url_list_empty") == [()]
    assert recorder.named("crawl_error") == []


def test_source_error_is_reported(stub_fetcher, recorder):
    error = ConnectionError("queue unavailable")
    url_list = ListUrlList([], get_error=error)
    assert run(make_operation(url_list, stub_fetcher, recorder=recorder).run()) is None

    assert recorder.named("crawl_error") == [(error, None)]
    assert stub_fetcher.calls == []


def test_transport_error_is_classified():
    url = "https://example.com/down"
    fetcher = StubFetcher(responses={url: FetchResult(url=url, status_code=0, error="Request timeout")})
    url_list = ListUrlList([url])
    outcome = run(make_operation(url_list, fetcher).run())

    assert outcome.error_code is ErrorCode.REQUEST_ERROR
    assert url_list.inserted == [outcome]


def test_raising_transport_is_classified():
    url = "https://example.com/boom"
    fetcher = StubFetcher(responses={url: OSError("socket closed")})
    outcome = run(make_operation(ListUrlList([url]), fetcher).run())

    assert outcome.error_code is ErrorCode.REQUEST_ERROR


def test_malformed_url_is_recorded_as_request_error(stub_fetcher, recorder):
    url = "http://[::1/page"
    url_list = FifoUrlList()

    async def scenario():
        await url_list.insert_if_not_exists(CrawlUrl(url=url))
        return await make_operation(url_list, stub_fetcher, recorder=recorder).run()

    outcome = run(scenario())
    assert outcome.error_code is ErrorCode.REQUEST_ERROR
    assert url_list.get_outcome(url).error_code is ErrorCode.REQUEST_ERROR
    assert stub_fetcher.calls == []
    assert recorder.named("crawled_url") == [(outcome,)]
    assert recorder.named("crawl_error") == []


def test_http_error_keeps_status():
    url = "https://example.com/missing"
    fetcher = StubFetcher(responses={url: FetchResult(url=url, status_code=404, content="nope",
                                                      content_type="text/html")})
    outcome = run(make_operation(ListUrlList([url]), fetcher).run())

    assert outcome.error_code is ErrorCode.HTTP_ERROR
    assert outcome.status_code == 404


def test_insert_failure_is_contained(stub_fetcher, recorder):
    error = RuntimeError("sink rejected")
    url_list = ListUrlList(["https://example.com/index1.html"], insert_error=error)
    assert run(make_operation(url_list, stub_fetcher, recorder=recorder).run()) is None

    assert recorder.named("crawl_error") == [(error, "https://example.com/index1.html")]
    assert recorder.named("crawled_url") == []


def test_handlers_queue_discovered_links(stub_fetcher):
    url_list = ListUrlList(["https://example.com/index1.html"])
    seen_contexts = []

    def links(context):
        seen_contexts.append(context)
        return ["https://example.com/a", "https://example.com/b", "https://example.com/a"]

    async def async_links(context):
        return ["https://example.com/c"]

    handlers = [
        RegisteredHandler(handler=links, content_type="text/html"),
        RegisteredHandler(handler=async_links),
        RegisteredHandler(handler=lambda c: ["https://example.com/never"], content_type="application/pdf"),
    ]
    outcome = run(make_operation(url_list, stub_fetcher, handlers=handlers).run())

    assert outcome.error_code is None
    assert seen_contexts[0].url == "https://example.com/index1.html"
    assert url_list.discovered == ["https://example.com/a", "https://example.com/b", "https://example.com/c"]


def test_handler_failure_is_classified(stub_fetcher, recorder):
    error = ValueError("bad markup")

    def broken(context):
        raise error

    url_list = ListUrlList(["https://example.com/index1.html"])
    operation = make_operation(url_list, stub_fetcher, handlers=[RegisteredHandler(handler=broken)],
                               recorder=recorder)
    outcome = run(operation.run())

    assert outcome.error_code is ErrorCode.HANDLERS_ERROR
    assert url_list.inserted == [outcome]
    assert recorder.named("handlers_error") == [(error, outcome)]
