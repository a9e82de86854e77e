import logging
import sys
from logging.handlers import RotatingFileHandler

from src.schoolbuddy.config import LOGS_DIR


class ColorFormatter(logging.Formatter):
    """A logging formatter that adds color to console output."""

    GREY = "\x1b[38;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    CYAN = "\x1b[36;20m"
    RESET = "\x1b[0m"

    BASE_FORMAT = "%(asctime)s - %(levelname)s - %(name)s:%(funcName)s:%(lineno)d - %(message)s"

    FORMATS = {
        logging.DEBUG: f"{CYAN}{BASE_FORMAT}{RESET}",
        logging.INFO: f"{GREY}{BASE_FORMAT}{RESET}",
        logging.WARNING: f"{YELLOW}{BASE_FORMAT}{RESET}",
        logging.ERROR: f"{RED}{BASE_FORMAT}{RESET}",
        logging.CRITICAL: f"{BOLD_RED}{BASE_FORMAT}{RESET}",
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno, self.BASE_FORMAT)
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


class LoggingService:
    """
    Configures centralized logging for the assistant.
    """
    LOG_FILE = "schoolbuddy.log"
    _configured = False

    @staticmethod
    def setup_logging(console_level: int = logging.INFO) -> None:
        """
        Configures the root logger for file and console output.
        Calling it more than once is a no-op.
        """
        if LoggingService._configured:
            return

        LOGS_DIR.mkdir(exist_ok=True)
        log_file_path = LOGS_DIR / LoggingService.LOG_FILE

        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(ColorFormatter())

        file_handler = RotatingFileHandler(
            log_file_path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(ColorFormatter.BASE_FORMAT))

        root_logger.addHandler(console_handler)
        root_logger.addHandler(file_handler)

        # The SDK's HTTP stack is chatty at DEBUG.
        for noisy in ("httpx", "httpcore", "google_genai"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

        LoggingService._configured = True
        logging.info("Logging service initialized.")
