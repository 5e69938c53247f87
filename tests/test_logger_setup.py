import json
import logging

from catalog_api.logger_setup import ELKLogger, JSONFormatter, get_logger


def test_get_logger_is_cached_and_writes_file(tmp_path):
    logger = get_logger("test-component", log_dir=str(tmp_path))

    assert isinstance(logger, ELKLogger)
    assert get_logger("test-component") is logger
    assert (tmp_path / "test-component.log").exists()
    assert logger.propagate is False


def test_json_formatter_includes_fields():
    record = logging.LogRecord("x", logging.INFO, __file__, 10, "Book indexed", None, None)
    record.fields = {"book_id": "b1", "version": 2}

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "Book indexed"
    assert payload["level"] == "INFO"
    assert payload["service"] == "book-catalog"
    assert payload["book_id"] == "b1"
    assert payload["version"] == 2


def test_keyword_fields_reach_the_record(tmp_path):
    logger = get_logger("test-fields", log_dir=str(tmp_path))
    records = []

    class Capture(logging.Handler):
        def emit(self, record):
            records.append(record)

    handler = Capture()
    logger.addHandler(handler)
    try:
        logger.warning("Activity not recorded", user_id="u1")
    finally:
        logger.removeHandler(handler)

    assert records[0].fields == {"user_id": "u1"}
    assert records[0].getMessage() == "Activity not recorded"
