"""
Host/endpoint resolver.

Path: ybstats/core/resolver.py

Turns the host list, port list, parallelism bound and optional hostname
regex into the concrete (host, port) work list for one endpoint kind.
Values given on the command line win over the configuration file and
are reported back in ResolvedTargets.overrides.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern

from ybstats.core.config import Config
from ybstats.core.kinds import KindSpec, PortRole
from ybstats.errors import InvalidRequestError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Endpoint:
    """One host:port to fetch from."""
    host: str
    port: int
    role: Optional[PortRole] = None
    tls: bool = False

    @property
    def hostname_port(self) -> str:
        return f"{self.host}:{self.port}"

    def url(self, path: str) -> str:
        scheme = "https" if self.tls else "http"
        return f"{scheme}://{self.host}:{self.port}{path}"


@dataclass
class ResolvedTargets:
    """Resolved hosts, ports and bound for one invocation."""
    hosts: List[str]
    ports: List[int]
    parallel: int
    hostname_filter: Optional[Pattern] = None
    port_roles: Dict[int, PortRole] = field(default_factory=dict)
    tls_ports: List[int] = field(default_factory=list)
    overrides: Dict[str, str] = field(default_factory=dict)

    def work_list(self, spec: KindSpec) -> List[Endpoint]:
        """
        Cross product of hosts and the ports serving ``spec``.

        Ports without a configured role are offered to every kind. The
        hostname filter is matched against ``host:port``; an empty result
        is valid and yields an empty section.
        """
        endpoints = []
        for host in self.hosts:
            for port in self.ports:
                role = self.port_roles.get(port)
                if role is not None and role not in spec.roles:
                    continue
                endpoint = Endpoint(host, port, role, tls=port in self.tls_ports)
                if self.hostname_filter and not self.hostname_filter.search(endpoint.hostname_port):
                    continue
                endpoints.append(endpoint)
        logger.debug(f"{spec.name}: {len(endpoints)} endpoints")
        return endpoints


def _split(value: str) -> List[str]:
    return [v.strip() for v in str(value).split(",") if v.strip()]


def _parse_ports(value: str) -> List[int]:
    ports = []
    for item in _split(value):
        try:
            port = int(item)
        except ValueError:
            raise InvalidRequestError(f"Invalid port: {item!r}")
        if not 0 < port < 65536:
            raise InvalidRequestError(f"Port out of range: {port}")
        ports.append(port)
    return ports


def compile_pattern(pattern: Optional[str], what: str) -> Optional[Pattern]:
    """Compile an optional filter regex, rejecting bad ones before any I/O."""
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidRequestError(f"Invalid {what} regex {pattern!r}: {e}")


def resolve_targets(
    config: Config,
    hosts: Optional[str] = None,
    ports: Optional[str] = None,
    parallel: Optional[int] = None,
    hostname_match: Optional[str] = None,
) -> ResolvedTargets:
    """
    Resolve command-line values against the configuration.

    Args:
        config: Loaded configuration (defaults).
        hosts: Comma-separated hosts, overrides config.
        ports: Comma-separated ports, overrides config.
        parallel: Concurrency bound, overrides config.
        hostname_match: Regex on ``host:port``.

    Returns:
        ResolvedTargets with overrides for any value given explicitly.

    Raises:
        InvalidRequestError: Bad port, bound or regex.
    """
    overrides: Dict[str, str] = {}
    if hosts is not None:
        overrides["hosts"] = hosts
    if ports is not None:
        overrides["ports"] = ports
    if parallel is not None:
        overrides["parallel"] = str(parallel)

    host_list = list(dict.fromkeys(_split(hosts if hosts is not None else config.hosts)))
    port_list = list(dict.fromkeys(_parse_ports(ports if ports is not None else config.ports)))

    bound = parallel if parallel is not None else config.execution.parallel
    if bound < 1:
        raise InvalidRequestError(f"Parallel must be at least 1, got {bound}")

    port_roles: Dict[int, PortRole] = {}
    for role_name, port in config.port_roles.items():
        try:
            port_roles[int(port)] = PortRole(role_name)
        except ValueError:
            raise InvalidRequestError(f"Unknown port role {role_name!r}")

    return ResolvedTargets(
        hosts=host_list,
        ports=port_list,
        parallel=bound,
        hostname_filter=compile_pattern(hostname_match, "hostname"),
        port_roles=port_roles,
        tls_ports=list(config.tls_ports),
        overrides=overrides,
    )
