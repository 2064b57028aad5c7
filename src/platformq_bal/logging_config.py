import logging
import logging.config


def setup_structured_logging(level: str = "INFO", json_format: bool = True):
    """
    Configures Python's logging for the access layer.
    JSON output is meant for log aggregation; plain text is easier to read
    from a terminal.
    """
    formatter = "json" if json_format else "plain"
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "class": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s"
            },
            "plain": {
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": formatter
            }
        },
        "root": {
            "handlers": ["default"],
            "level": level.upper()
        }
    }
    logging.config.dictConfig(config)
