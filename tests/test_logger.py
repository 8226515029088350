import json
import logging

from politecrawl.utils.config import LoggingConfig
from politecrawl.utils.logger import JSONFormatter, PerformanceFilter, get_crawler_logger, setup_logging


def test_json_formatter_includes_url_context():
    logger = logging.getLogger("politecrawl.test")
    record = logger.makeRecord("politecrawl.test", logging.INFO, __file__, 1,
                               "Crawled %s", ("https://example.com/",), None,
                               extra={"url": "https://example.com/", "error_code": "HTTP_ERROR"})
    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "Crawled https://example.com/"
    assert entry["level"] == "INFO"
    assert entry["url"] == "https://example.com/"
    assert entry["error_code"] == "HTTP_ERROR"


def test_url_event_carries_extra_fields(caplog):
    adapter = get_crawler_logger("politecrawl.test", component="operation")
    with caplog.at_level(logging.INFO, logger="politecrawl.test"):
        adapter.log_url_event(logging.INFO, "https://example.com/a", "fetched")

    record = caplog.records[-1]
    assert record.url == "https://example.com/a"
    assert record.event_type == "url_event"
    assert record.component == "operation"


def test_performance_filter_drops_access_logs():
    log_filter = PerformanceFilter()
    noisy = logging.LogRecord("aiohttp.access", logging.INFO, __file__, 1, "GET /", None, None)
    useful = logging.LogRecord("politecrawl.crawler", logging.INFO, __file__, 1, "started", None, None)
    assert not log_filter.filter(noisy)
    assert log_filter.filter(useful)


def test_setup_logging_creates_log_directory(tmp_path):
    log_file = tmp_path / "logs" / "crawler.log"
    previous_handlers = list(logging.getLogger().handlers)
    previous_level = logging.getLogger().level
    root = setup_logging(LoggingConfig(level="DEBUG", file=str(log_file)))
    try:
        assert log_file.parent.is_dir()
        assert root.level == logging.DEBUG
        assert logging.getLogger("aiohttp").level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)
        for handler in previous_handlers:
            root.addHandler(handler)
        root.setLevel(previous_level)
