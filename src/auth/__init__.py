#
# SPDX-License-Identifier: AGPL-3.0-only
# Copyright (c) 2026 m2-eng
# Author: m2-eng
# Co-Author: GitHub Copilot
# License: GNU Affero General Public License v3.0 (AGPL-3.0-only)
# Purpose: Credential and session lifecycle.
#
"""
Credential and session lifecycle.
"""

from .connection_pool_manager import ConnectionPoolManager, PoolSettings
from .rate_limiter import (
    InMemoryCounterBackend,
    RateLimitDecision,
    RateLimiter,
    RateLimitPolicy,
    RedisCounterBackend,
)
from .rotation import RefreshRotation, RotationState
from .service import AuthEnvelope, AuthService
from .session_store import SessionStore
from .token_issuer import TokenIssuer, TokenSettings, TokenType

__all__ = [
    'AuthEnvelope',
    'AuthService',
    'ConnectionPoolManager',
    'InMemoryCounterBackend',
    'PoolSettings',
    'RateLimitDecision',
    'RateLimiter',
    'RateLimitPolicy',
    'RedisCounterBackend',
    'RefreshRotation',
    'RotationState',
    'SessionStore',
    'TokenIssuer',
    'TokenSettings',
    'TokenType',
]
