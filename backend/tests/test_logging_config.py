"""
Tests for log masking and level counters
"""
import logging

from app.core.logging_config import LoggingConfig, SensitiveDataFilter


def _record(msg, args=None, **extra):
    record = logging.LogRecord("app.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSensitiveDataFilter:

    def test_masks_credentials_in_message(self):
        record = _record("login password=hunter2 with Bearer abc.def.ghi")

        SensitiveDataFilter().filter(record)

        assert "hunter2" not in record.msg
        assert "abc.def.ghi" not in record.msg
        assert "Bearer ***" in record.msg

    def test_masks_string_args(self):
        record = _record("payload %s %d", ("api_key=sk-123", 5))

        SensitiveDataFilter().filter(record)

        assert "sk-123" not in record.args[0]
        assert record.args[1] == 5

    def test_masks_extra_fields(self):
        record = _record("Email sent", to="sam@example.com", phone="+34 600 123 456", token="tok-1")

        SensitiveDataFilter().filter(record)

        assert record.to == "s***@example.com"
        assert record.phone == "***456"
        assert record.token == "***"

    def test_disabled_filter_leaves_record_alone(self):
        record = _record("password=hunter2", email="sam@example.com")

        SensitiveDataFilter(enabled=False).filter(record)

        assert record.msg == "password=hunter2"
        assert record.email == "sam@example.com"

    def test_mask_contact(self):
        assert SensitiveDataFilter.mask_contact("sam@example.com") == "s***@example.com"
        assert SensitiveDataFilter.mask_contact("123") == "***"


class TestLogMetrics:

    def test_counts_by_level(self):
        logger = LoggingConfig.get_logger("app.tests.metrics")
        LoggingConfig.reset_metrics()

        logger.warning("first")
        logger.error("second")
        logger.error("third")

        metrics = LoggingConfig.get_metrics()
        assert metrics["WARNING"] == 1
        assert metrics["ERROR"] == 2

    def test_reset(self):
        LoggingConfig.get_logger("app.tests.metrics").error("counted")
        LoggingConfig.reset_metrics()

        assert LoggingConfig.get_metrics() == {
            "DEBUG": 0, "INFO": 0, "WARNING": 0, "ERROR": 0, "CRITICAL": 0,
        }

    def test_context_is_merged_and_cleared(self):
        LoggingConfig.set_context(request_id="r1")
        LoggingConfig.set_context(user_id="u1")

        from app.core.logging_config import request_context
        assert request_context.get() == {"request_id": "r1", "user_id": "u1"}

        LoggingConfig.clear_context()
        assert request_context.get() == {}
