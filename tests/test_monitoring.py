# File: tests/test_monitoring.py
import json
import logging

from sitegraph.utils.config import LoggingConfig
from sitegraph.utils.logger import (
    JSONFormatter, PerformanceFilter, get_crawler_logger, setup_logging
)
from sitegraph.utils.monitoring import CrawlerMonitor, MetricsCollector


def test_monitor_counts_fetches_and_documents():
    monitor = CrawlerMonitor()
    monitor.record_fetch("http://ex.test/a", True, 0.2)
    monitor.record_fetch("http://ex.test/b", True, 0.1)
    monitor.record_fetch("http://ex.test/c", False, 0.3)
    monitor.record_document_stored("http://ex.test/a", entity_count=4)
    monitor.update_queue_size(7)

    values = monitor.metrics.get_current_values()
    assert values["pages_fetched_total{status=success}"] == 2
    assert values["pages_fetched_total{status=error}"] == 1
    assert values["documents_stored_total"] == 1
    assert values["entities_extracted_total"] == 4
    assert values["frontier_size"] == 7

    summary = monitor.get_summary()
    assert summary["metrics"] == values
    assert summary["rates"]["urls_per_second"] > 0


def test_prometheus_exposition_uses_own_registry():
    first = MetricsCollector()
    second = MetricsCollector()
    CrawlerMonitor(first).record_error("CrawlRunError")

    assert b'sitegraph_errors_total{error_type="CrawlRunError"} 1.0' in first.exposition()
    assert b"CrawlRunError" not in second.exposition()


def test_metric_history_is_bounded():
    collector = MetricsCollector()
    for i in range(collector.MAX_POINTS + 5):
        collector.set_gauge("in_flight_fetches", i)

    metric = collector.get_metric("in_flight_fetches")
    assert len(metric.points) == collector.MAX_POINTS
    assert metric.current_value == collector.MAX_POINTS + 4


def test_json_formatter_includes_adapter_context(caplog):
    logger = get_crawler_logger("sitegraph.test", run_id="abc123")
    with caplog.at_level(logging.INFO, logger="sitegraph.test"):
        logger.log_url_event(logging.INFO, "http://ex.test/a", "fetched")
        logger.log_crawler_stat("pages_per_minute", 12.5)

    url_entry = json.loads(JSONFormatter().format(caplog.records[0]))
    assert url_entry["message"] == "fetched"
    assert url_entry["url"] == "http://ex.test/a"
    assert url_entry["event_type"] == "url_event"
    assert url_entry["run_id"] == "abc123"

    stat_entry = json.loads(JSONFormatter().format(caplog.records[1]))
    assert stat_entry["stat_name"] == "pages_per_minute"
    assert stat_entry["stat_value"] == 12.5


def test_performance_filter_drops_access_logs():
    noisy = logging.LogRecord("aiohttp.access", logging.INFO, __file__, 1, "GET /", None, None)
    useful = logging.LogRecord("sitegraph.crawler", logging.INFO, __file__, 1, "ok", None, None)

    log_filter = PerformanceFilter()
    assert log_filter.filter(noisy) is False
    assert log_filter.filter(useful) is True


def test_setup_logging_writes_to_file(tmp_path):
    log_file = tmp_path / "logs" / "sitegraph.log"
    previous_level = logging.getLogger().level
    root = setup_logging(LoggingConfig(level="DEBUG", file=str(log_file), json=True))
    try:
        logging.getLogger("sitegraph.test").info("hello")
        for handler in root.handlers:
            handler.flush()

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[-1])["message"] == "hello"
    finally:
        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)
        root.setLevel(previous_level)
