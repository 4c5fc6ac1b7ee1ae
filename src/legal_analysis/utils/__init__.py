"""
Utility modules for legal document analysis
"""

from .data_validator import DataValidator
from .logger import setup_logger, AuditLogger

__all__ = [
    'DataValidator',
    'setup_logger',
    'AuditLogger'
]
