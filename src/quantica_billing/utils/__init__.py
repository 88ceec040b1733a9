"""Utility modules for Quantica billing."""

from quantica_billing.utils.logging import setup_logging, get_logger, RequestLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "RequestLogger",
]
