#
# SPDX-License-Identifier: AGPL-3.0-only
# Copyright (c) 2026 m2-eng
# Author: m2-eng
# License: GNU Affero General Public License v3.0 (AGPL-3.0-only)
# Purpose: Host resolution and TLS decisions for database connections.
#
"""
Host resolution and TLS decisions for database connections.
"""

import ipaddress
import logging
import socket
from typing import Optional

logger = logging.getLogger(__name__)

LOCAL_HOSTS = {"localhost", "db"}

# RFC 1918 ranges and IPv6 unique-local addresses. Listed explicitly because
# ipaddress.is_private also covers documentation and reserved ranges.
PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(net)
    for net in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "fc00::/7")
)


def resolve_host(host: str, port: int) -> str:
    """
    Resolves a host name once, preferring IPv4.

    Addresses are taken in resolver order; the first IPv4 address wins,
    otherwise the first address of any family. On resolver failure the
    host name is returned unchanged so the driver can try on its own.

    Args:
        host: Host name or literal address
        port: Target port

    Returns:
        Address to connect to
    """
    if not host:
        return host

    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        logger.warning("Failed to resolve %s, using it unresolved: %s", host, e)
        return host

    for family, _, _, _, sockaddr in infos:
        if family == socket.AF_INET:
            return sockaddr[0]

    if infos:
        return infos[0][4][0]
    return host


def is_private_address(host: str) -> bool:
    """True for loopback, private and link-local addresses and well-known local names."""
    if not host:
        return False
    if host.lower() in LOCAL_HOSTS:
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    if address.is_loopback or address.is_link_local:
        return True
    return any(address.version == net.version and address in net for net in PRIVATE_NETWORKS)


def should_use_tls(host: str, resolved_host: str, require_tls: Optional[bool] = None) -> bool:
    """
    Decides whether connections use TLS.

    An explicit ``require_tls`` wins. Otherwise TLS is on unless the
    target is a loopback or private address.
    """
    if require_tls is not None:
        return bool(require_tls)
    return not (is_private_address(host) or is_private_address(resolved_host))
