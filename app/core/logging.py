import logging
import sys


class ContextFormatter(logging.Formatter):
    """Custom formatter that handles optional backend_id and op fields."""
    def format(self, record):
        # Add default values for backend_id and op if not present
        if not hasattr(record, 'backend_id'):
            record.backend_id = '-'
        if not hasattr(record, 'op'):
            record.op = '-'
        return super().format(record)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ContextFormatter(
        "%(asctime)s %(levelname)s %(name)s [backend_id=%(backend_id)s op=%(op)s] - %(message)s"
    ))
    logging.basicConfig(
        level=level,
        handlers=[handler],
    )
