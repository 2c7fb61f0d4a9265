"""
Fit Analysis Pipeline - Utilities

Logging setup and structured (JSON) logging shared by the pipeline and
the command line interface.
"""

from fitstream.utils.logging import (
    PACKAGE_LOGGER,
    JsonFormatter,
    StructuredLogger,
    configure_logging,
    get_structured_logger,
)

__all__ = [
    "PACKAGE_LOGGER",
    "JsonFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_structured_logger",
]
