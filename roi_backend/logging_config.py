import logging
import logging.config
from pathlib import Path
from typing import Dict


LOG_DIR = Path(__file__).resolve().parent / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)

# Directory for per-conversation assistant logs
CONVERSATION_LOG_DIR = LOG_DIR / "conversations"
CONVERSATION_LOG_DIR.mkdir(parents=True, exist_ok=True)

# Cache of conversation loggers to avoid recreating them
_conversation_loggers: Dict[str, logging.Logger] = {}


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure app-wide logging with rotation to file and console."""

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "default",
                "filename": str(LOG_DIR / "app.log"),
                "maxBytes": 5 * 1024 * 1024,
                "backupCount": 3,
            },
        },
        "loggers": {
            "uvicorn.error": {"level": level, "handlers": ["console", "file"], "propagate": False},
            "uvicorn.access": {"level": level, "handlers": ["console", "file"], "propagate": False},
        },
        "root": {
            "level": level,
            "handlers": ["console", "file"],
        },
    }

    logging.config.dictConfig(logging_config)
    return logging.getLogger("roi_backend")


def conversation_log_path(conversation_id: str) -> Path:
    """Log file for a conversation. Raises ``ValueError`` if it would leave the log directory."""
    log_dir = CONVERSATION_LOG_DIR.resolve()
    log_file = (log_dir / f"{conversation_id}.log").resolve()
    if log_file.parent != log_dir:
        raise ValueError(f"invalid conversation id: {conversation_id!r}")
    return log_file


def get_conversation_logger(conversation_id: str, level: str = "INFO") -> logging.Logger:
    """
    Get or create a logger specific to an assistant conversation.
    Each conversation gets its own log file in logs/conversations/

    Args:
        conversation_id: Unique conversation identifier
        level: Logging level (default: INFO)

    Returns:
        Logger instance for the conversation
    """
    if conversation_id in _conversation_loggers:
        return _conversation_loggers[conversation_id]

    log_file = conversation_log_path(conversation_id)

    conversation_logger = logging.getLogger(f"conversation.{conversation_id}")
    conversation_logger.setLevel(level)

    # Keep conversation transcripts out of the app log
    conversation_logger.propagate = False

    file_handler = logging.FileHandler(str(log_file), mode='a', encoding='utf-8')
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    conversation_logger.addHandler(file_handler)

    _conversation_loggers[conversation_id] = conversation_logger

    conversation_logger.info(f"=== Conversation {conversation_id} started ===")

    return conversation_logger


def close_conversation_logger(conversation_id: str) -> None:
    """
    Close and remove a conversation logger.
    Called when a conversation is pruned or deleted.
    """
    if conversation_id in _conversation_loggers:
        logger = _conversation_loggers[conversation_id]
        logger.info(f"=== Conversation {conversation_id} ended ===")

        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

        del _conversation_loggers[conversation_id]
