import logging
from pathlib import Path
from typing import Optional, Sequence

# Centralized logger name
LOGGER_NAME = "config_audit"

def init_logging(
    verbose: bool = False,
    log_path: Optional[Path] = None,
    log_to_console: bool = True,
    log_to_file: bool = True
) -> logging.Logger:
    """
    Initializes and configures the main project logger.

    Console output goes to stderr so that rendered reports on stdout stay clean.

    Args:
        verbose (bool): Enable DEBUG logging.
        log_path (Optional[Path]): Optional log file path.
        log_to_console (bool): Enable logging to stderr.
        log_to_file (bool): Enable logging to file.

    Returns:
        logging.Logger: Configured logger instance.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Avoid duplicate logs in dev or test environments
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = _create_formatter()

    if log_to_file and log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if log_to_console:
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    return logger


def _create_formatter() -> logging.Formatter:
    """
    Create a default log formatter.

    Returns:
        logging.Formatter
    """
    return logging.Formatter("[%(levelname)s] %(asctime)s - %(message)s")


def get_logger() -> logging.Logger:
    """
    Retrieve the main project logger.

    Returns:
        logging.Logger
    """
    return logging.getLogger(LOGGER_NAME)


def log_audit_debug(
    logger: logging.Logger,
    root: str,
    domains: Sequence[str],
    counts: dict,
    unavailable: Sequence[str] = (),
    indeterminate: Sequence[str] = ()
) -> None:
    """
    Log a short digest of a finished audit run.

    Args:
        logger (logging.Logger): The logger instance to use.
        root (str): Audited project root.
        domains (Sequence[str]): Domain packs that ran.
        counts (dict): Active finding counts keyed by severity.
        unavailable (Sequence[str]): Signal keys that could not be read.
        indeterminate (Sequence[str]): Rule ids that evaluated to indeterminate.
    """
    logger.info(f"[{root}] Domains: {', '.join(domains) or '-'} | Findings: {counts}")

    if unavailable:
        logger.warning(f"[{root}] {len(unavailable)} signal(s) unavailable: {list(unavailable)}")

    if indeterminate:
        logger.debug(f"[{root}] Indeterminate rules: {list(indeterminate)}")
