from dotenv import load_dotenv
import os
import logging

DEFAULT_CRITICAL_ROLE_MARKERS = "SAP_ALL,SAP_NEW,ADMIN"

def setup_logging(log_file=None):
    """
    Set up logging configuration for the application.
    Logs to both file (app.log unless LOG_FILE says otherwise) and console.
    """
    logger = logging.getLogger()
    if not logger.handlers:  # Avoid duplicate handlers
        logger.setLevel(logging.INFO)
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        # File handler
        file_handler = logging.FileHandler(log_file or os.getenv("LOG_FILE", "app.log"))
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger

def _int_env(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default

def load_config():
    """
    Load environment variables from .env file.
    Returns: Dict of config values.
    """
    logger = logging.getLogger(__name__)
    logger.info("Loading environment variables")

    try:
        load_dotenv()
        markers = os.getenv("CRITICAL_ROLE_MARKERS", DEFAULT_CRITICAL_ROLE_MARKERS)
        config = {
            "WORKBOOK_SOURCE": os.getenv("WORKBOOK_SOURCE", ""),
            "AZURE_BLOB_SAS_URL": os.getenv("AZURE_BLOB_SAS_URL", ""),
            "AZURE_BLOB_CONTAINER": os.getenv("AZURE_BLOB_CONTAINER", "accessreview"),
            "WORKBOOK_BLOB_NAME": os.getenv("WORKBOOK_BLOB_NAME", ""),
            "FETCH_TIMEOUT_SECONDS": _int_env("FETCH_TIMEOUT_SECONDS", 30),
            "FETCH_MAX_RETRIES": _int_env("FETCH_MAX_RETRIES", 3),
            "REFRESH_INTERVAL_HOURS": _int_env("REFRESH_INTERVAL_HOURS", 0),
            "DORMANT_AFTER_DAYS": _int_env("DORMANT_AFTER_DAYS", 90),
            "OPTIMIZATION_THRESHOLD": _int_env("OPTIMIZATION_THRESHOLD", 40),
            "CRITICAL_ROLE_MARKERS": tuple(m.strip() for m in markers.split(",") if m.strip()),
            "CORS_ORIGINS": [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()],
        }
        logger.info("Environment variables loaded successfully")
        return config
    except Exception as e:
        logger.error(f"Failed to load environment variables: {str(e)}")
        raise
