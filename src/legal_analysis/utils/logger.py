"""
Logger Utility
Centralized logging configuration
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional
import json

DEFAULT_LOG_DIR = "logs"


def setup_logger(name: str, level: Optional[str] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """
    Setup logger with consistent formatting

    Args:
        name: Logger name
        level: Logging level (defaults to LOG_LEVEL env var, then INFO)
        log_dir: Directory for the daily error log (defaults to LEGAL_ANALYSIS_LOG_DIR, then ./logs)

    Returns:
        Configured logger
    """

    level = level or os.getenv("LOG_LEVEL", "INFO")

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)

    # Format
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler for errors
    error_dir = Path(log_dir or os.getenv("LEGAL_ANALYSIS_LOG_DIR", DEFAULT_LOG_DIR))
    try:
        error_dir.mkdir(parents=True, exist_ok=True)
        error_handler = logging.FileHandler(
            error_dir / f"errors_{datetime.now().strftime('%Y%m%d')}.log"
        )
    except OSError as e:
        logger.warning(f"Error log file disabled: {e}")
        return logger

    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    logger.addHandler(error_handler)

    return logger


class AuditLogger:
    """
    Audit logger for analysis runs
    Appends one JSON line per lifecycle event
    """

    def __init__(self, log_file: str = "audit.jsonl", log_dir: Optional[str] = None):
        """Initialize audit logger"""

        self.log_file = Path(log_dir or os.getenv("LEGAL_ANALYSIS_LOG_DIR", DEFAULT_LOG_DIR)) / log_file
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: str, data: Dict):
        """
        Log audit event

        Args:
            event: Event type (analysis_started, analysis_failed, ...)
            data: Event data
        """

        entry = {
            "timestamp": datetime.now().isoformat(),
            "event": event,
            "data": data
        }

        with open(self.log_file, 'a') as f:
            f.write(json.dumps(entry, default=str) + '\n')

    def read_events(self, document_id: Optional[str] = None) -> list:
        """Read back logged events, optionally filtered by document id"""

        if not self.log_file.exists():
            return []

        events = []
        with open(self.log_file) as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                entry = json.loads(line)
                if document_id and entry["data"].get("document_id") != document_id:
                    continue
                events.append(entry)
        return events
