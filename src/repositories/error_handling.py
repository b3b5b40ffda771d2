#
# SPDX-License-Identifier: AGPL-3.0-only
# Copyright (c) 2026 m2-eng
# Author: m2-eng
# Co-Author: GitHub Copilot
# License: GNU Affero General Public License v3.0 (AGPL-3.0-only)
# Purpose: Translation of driver errors raised by repositories.
#
"""
Translation of driver errors raised by repositories.

Persistence for sessions and users fails closed: any mysql-connector
error is logged and surfaces as BackingStoreUnavailableError. Pool
errors (exhaustion, acquire timeout) are already typed and pass through.
"""

from functools import wraps
from typing import Callable, Optional
import logging

from mysql.connector.errors import Error as MySQLError, InterfaceError, OperationalError

from auth.errors import BackingStoreUnavailableError

logger = logging.getLogger("uvicorn.error")


def _describe(exc: MySQLError) -> str:
    if isinstance(exc, (OperationalError, InterfaceError)):
        return "Database connection error"
    return "Database error"


def handle_repository_errors(operation_name: str = "database operation", error_message: Optional[str] = None):
    """
    Decorator for repository methods.

    Args:
        operation_name: Operation named in the log line and the raised error
        error_message: Log prefix replacing the default description
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except MySQLError as exc:
                logger.error("%s (%s): %s", error_message or _describe(exc), operation_name, exc)
                raise BackingStoreUnavailableError(f"{operation_name} failed: {exc}") from exc
        return wrapper
    return decorator
