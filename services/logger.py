import json
import logging

from services.config.config import USE_GCLOUD_LOGGING, LOG_LEVEL

_configured = False


def _setup_gcloud_logging():
    """Attach a Cloud Logging handler to the root logger"""
    import google.cloud.logging
    from google.cloud.logging_v2.handlers import CloudLoggingHandler

    client = google.cloud.logging.Client()
    root = logging.getLogger()
    root.setLevel(LOG_LEVEL)
    root.handlers.clear()

    cloud_handler = CloudLoggingHandler(client)
    # JSON shaped so the log explorer can parse severity and timestamp
    cloud_handler.setFormatter(logging.Formatter(
        '{"message": "%(message)s", "severity": "%(levelname)s", "timestamp": "%(asctime)s", "logger": "%(name)s"}'
    ))
    root.addHandler(cloud_handler)


def configure_logging():
    """
    Configure process-wide logging once.
    Uses Google Cloud logging when USE_GCLOUD_LOGGING is enabled, standard logging otherwise.
    """
    global _configured
    if _configured:
        return
    _configured = True

    if USE_GCLOUD_LOGGING:
        try:
            _setup_gcloud_logging()
            return
        except Exception as e:
            logging.basicConfig(level=LOG_LEVEL)
            logging.getLogger(__name__).warning(
                f"Failed to initialize Google Cloud logging: {e}. Using standard logging."
            )
            return

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def log_info(logger: logging.Logger, message: str, **kwargs):
    """Log info message with additional context"""
    if kwargs:
        logger.info(f"{message} - {json.dumps(kwargs, default=str)}")
    else:
        logger.info(message)
