import json
import logging

from async_request.utils.logger import JSONFormatter, get_logger


def test_get_logger_namespaces_names():
    assert get_logger("performance").logger.name == "async_request.performance"
    assert get_logger("async_request.dispatcher").logger.name == "async_request.dispatcher"


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("async_request.x", logging.INFO, __file__, 1, "Dispatching", None, None)
    record.extra_data = {"identifier": "wp_job_1", "mode": "rest"}
    entry = json.loads(JSONFormatter().format(record))
    assert entry["message"] == "Dispatching"
    assert entry["identifier"] == "wp_job_1"
    assert entry["level"] == "INFO"
