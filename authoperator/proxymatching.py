"""NO_PROXY matching rules that decide whether an address bypasses the proxy."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple, Union
from urllib.parse import urlsplit

import idna

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

PORT_MAP = {
    "http": "80",
    "https": "443",
    "socks5": "1080",
}


def _unmap(ip: IPAddress) -> IPAddress:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _parse_ip(value: str) -> Optional[IPAddress]:
    if "%" in value:
        return None
    try:
        return _unmap(ipaddress.ip_address(value))
    except ValueError:
        return None


def _parse_cidr(value: str) -> Optional[IPNetwork]:
    address, sep, prefix = value.partition("/")
    if not sep or not prefix.isdigit() or _parse_ip(address) is None:
        return None
    try:
        return ipaddress.ip_network(value, strict=False)
    except ValueError:
        return None


def _split_host_port(hostport: str) -> Tuple[str, str]:
    """Split "host:port" or "[host]:port"; raise ValueError when malformed."""
    colon = hostport.rfind(":")
    if colon < 0:
        raise ValueError(f"address {hostport}: missing port in address")
    start, end_search = 0, 0
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"address {hostport}: missing ']' in address")
        if end + 1 == len(hostport):
            raise ValueError(f"address {hostport}: missing port in address")
        if end + 1 != colon:
            if hostport[end + 1] == ":":
                raise ValueError(f"address {hostport}: too many colons in address")
            raise ValueError(f"address {hostport}: missing port in address")
        host = hostport[1:end]
        start, end_search = 1, end + 1
    else:
        host = hostport[:colon]
        if ":" in host:
            raise ValueError(f"address {hostport}: too many colons in address")
    if "[" in hostport[start:]:
        raise ValueError(f"address {hostport}: unexpected '[' in address")
    if "]" in hostport[end_search:]:
        raise ValueError(f"address {hostport}: unexpected ']' in address")
    return host, hostport[colon + 1:]


def _join_host_port(host: str, port: str) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class Matcher(Protocol):
    def match(self, host: str, port: str, ip: Optional[IPAddress]) -> bool:
        ...


@dataclass(frozen=True)
class AllMatch:
    """Matches every address."""

    def match(self, host: str, port: str, ip: Optional[IPAddress]) -> bool:
        return True


@dataclass(frozen=True)
class CidrMatch:
    """Matches IP addresses inside a network."""

    cidr: IPNetwork

    def match(self, host: str, port: str, ip: Optional[IPAddress]) -> bool:
        return ip is not None and ip in self.cidr


@dataclass(frozen=True)
class IPMatch:
    """Matches a single IP address, optionally on one port."""

    ip: IPAddress
    port: str = ""

    def match(self, host: str, port: str, ip: Optional[IPAddress]) -> bool:
        if ip is not None and _unmap(self.ip) == _unmap(ip):
            return self.port in ("", port)
        return False


@dataclass(frozen=True)
class DomainMatch:
    """Matches a domain and its subdomains, optionally on one port."""

    host: str
    port: str = ""
    match_host: bool = False

    def match(self, host: str, port: str, ip: Optional[IPAddress]) -> bool:
        if host.endswith(self.host) or (self.match_host and host == self.host[1:]):
            return self.port in ("", port)
        return False


@dataclass
class ProxyMatchers:
    """The parsed rules of a NO_PROXY list."""

    ip_matchers: List[Matcher] = field(default_factory=list)
    domain_matchers: List[Matcher] = field(default_factory=list)

    def matches(self, addr: str) -> bool:
        """Return True when ``addr`` ("host:port") should bypass the proxy."""
        if not addr:
            return False
        try:
            host, port = _split_host_port(addr)
        except ValueError:
            return True
        if host == "localhost":
            return True
        ip = _parse_ip(host)
        if ip is not None and ip.is_loopback:
            return True

        host = host.strip().lower()
        if ip is not None and any(m.match(host, port, ip) for m in self.ip_matchers):
            return True
        return any(m.match(host, port, ip) for m in self.domain_matchers)


def parse_no_proxy(no_proxy_config: str) -> ProxyMatchers:
    """Parse a comma separated NO_PROXY value into matchers."""
    matchers = ProxyMatchers()
    for entry in no_proxy_config.split(","):
        entry = entry.strip().lower()
        if not entry:
            continue

        if entry == "*":
            return ProxyMatchers(ip_matchers=[AllMatch()], domain_matchers=[AllMatch()])

        network = _parse_cidr(entry)
        if network is not None:
            matchers.ip_matchers.append(CidrMatch(network))
            continue

        port = ""
        try:
            phost, port = _split_host_port(entry)
        except ValueError:
            phost = entry
        else:
            if not phost:
                continue
            if phost.startswith("[") and phost.endswith("]"):
                phost = phost[1:-1]

        ip = _parse_ip(phost)
        if ip is not None:
            matchers.ip_matchers.append(IPMatch(ip=ip, port=port))
            continue

        if not phost:
            continue

        if phost.startswith("*."):
            phost = phost[1:]
        match_host = False
        if not phost.startswith("."):
            match_host = True
            phost = "." + phost
        matchers.domain_matchers.append(DomainMatch(host=phost, port=port, match_host=match_host))

    return matchers


def _idna_ascii(value: str) -> str:
    if value.isascii():
        return value
    try:
        return idna.encode(value, uts46=True).decode("ascii")
    except (idna.IDNAError, UnicodeError):
        return value


def _url_port(netloc: str) -> str:
    hostport = netloc.rpartition("@")[2]
    colon = hostport.rfind(":")
    if colon < 0:
        return ""
    candidate = hostport[colon + 1:]
    return candidate if candidate.isdigit() else ""


def canonical_addr(url: str) -> str:
    """Return the URL's host with a ":port" suffix, defaulting by scheme."""
    parts = urlsplit(url)
    addr = _idna_ascii(parts.hostname or "")
    port = _url_port(parts.netloc) or PORT_MAP.get(parts.scheme, "")
    return _join_host_port(addr, port)