import logging

from pythonjsonlogger.jsonlogger import JsonFormatter

from platformq_bal.logging_config import setup_structured_logging


class TestStructuredLogging:

    def test_json_output(self):
        setup_structured_logging("debug")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert any(isinstance(h.formatter, JsonFormatter) for h in root.handlers)

    def test_plain_output(self):
        setup_structured_logging("WARNING", json_format=False)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert not any(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
