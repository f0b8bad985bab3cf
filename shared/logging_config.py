"""
Logging configuration for tickstack entry points.

Provides consistent logging setup for the CLI, launch scripts and deployment helpers.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union


def setup_logging(
    component_name: str,
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    format_string: Optional[str] = None
):
    """
    Configure logging for a tickstack entry point.

    Args:
        component_name: Component identifier (e.g., 'tickstack', 'deploy')
        level: Logging level, numeric or name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        format_string: Custom format string (default provided)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if format_string is None:
        format_string = f'[%(asctime)s] [{component_name.upper()}] %(levelname)s - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    # force=True replaces handlers installed by an earlier setup
    logging.basicConfig(
        level=level,
        format=format_string,
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
        force=True,
    )

    logger = logging.getLogger(component_name)
    logger.debug(f"{component_name.upper()} logging initialized (level={logging.getLevelName(level)})")

    return logger
