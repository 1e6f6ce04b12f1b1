import ipaddress

import pytest

from authoperator.proxymatching import (
    AllMatch,
    CidrMatch,
    DomainMatch,
    IPMatch,
    ProxyMatchers,
    canonical_addr,
    parse_no_proxy,
)


def test_empty_address_never_matches():
    assert parse_no_proxy("*").matches("") is False


def test_wildcard_matches_everything():
    matchers = parse_no_proxy("example.com, *")
    assert matchers.ip_matchers == [AllMatch()]
    assert matchers.domain_matchers == [AllMatch()]
    assert matchers.matches("anything.example.org:443")


def test_address_without_port_matches():
    assert parse_no_proxy("").matches("proxy.testing.com")


@pytest.mark.parametrize("addr", ["localhost:80", "127.0.0.1:443", "[::1]:8080"])
def test_loopback_always_matches(addr):
    assert parse_no_proxy("").matches(addr)


@pytest.mark.parametrize(
    "addr", ["proxy.testing.com:443", "testing.com:443", "a.b.testing.com:80"]
)
def test_domain_matches_host_and_subdomains(addr):
    assert parse_no_proxy("testing.com").matches(addr)


def test_domain_does_not_match_unrelated_suffix():
    assert not parse_no_proxy("testing.com").matches("othertesting.com:443")


def test_leading_dot_excludes_bare_domain():
    matchers = parse_no_proxy(".testing.com")
    assert matchers.matches("proxy.testing.com:443")
    assert not matchers.matches("testing.com:443")


def test_star_dot_prefix_is_parsed_like_leading_dot():
    assert parse_no_proxy("*.testing.com").domain_matchers == [
        DomainMatch(host=".testing.com", port="", match_host=False)
    ]


def test_domain_with_port_restricts_port():
    matchers = parse_no_proxy("testing.com:8443")
    assert matchers.matches("proxy.testing.com:8443")
    assert not matchers.matches("proxy.testing.com:443")


def test_entries_are_case_insensitive():
    assert parse_no_proxy(" Testing.COM ").matches("PROXY.testing.com:443")


def test_cidr_matching():
    matchers = parse_no_proxy("10.0.0.0/8")
    assert matchers.ip_matchers == [CidrMatch(ipaddress.ip_network("10.0.0.0/8"))]
    assert matchers.matches("10.1.2.3:80")
    assert not matchers.matches("11.1.2.3:80")


def test_ip_with_port():
    matchers = parse_no_proxy("192.168.1.5:8080")
    assert matchers.ip_matchers == [IPMatch(ipaddress.ip_address("192.168.1.5"), "8080")]
    assert matchers.matches("192.168.1.5:8080")
    assert not matchers.matches("192.168.1.5:80")


def test_bracketed_ipv6_with_port():
    matchers = parse_no_proxy("[2001:db8::1]:443")
    assert matchers.matches("[2001:db8::1]:443")
    assert not matchers.matches("[2001:db8::2]:443")


def test_plain_ipv6_entry():
    assert parse_no_proxy("2001:db8::1").matches("[2001:db8::1]:443")


def test_malformed_entry_without_host_is_ignored():
    matchers = parse_no_proxy(":80")
    assert matchers.ip_matchers == []
    assert matchers.domain_matchers == []


def test_cidr_match_needs_an_ip():
    assert not CidrMatch(ipaddress.ip_network("10.0.0.0/8")).match("host", "80", None)


def test_empty_matchers_match_nothing_remote():
    assert not ProxyMatchers().matches("proxy.testing.com:443")


def test_canonical_addr_uses_scheme_default_port():
    assert canonical_addr("https://proxy.testing.com") == "proxy.testing.com:443"
    assert canonical_addr("http://proxy.testing.com/path") == "proxy.testing.com:80"
    assert canonical_addr("socks5://proxy.testing.com") == "proxy.testing.com:1080"


def test_canonical_addr_keeps_explicit_port_and_brackets_ipv6():
    assert canonical_addr("https://proxy.testing.com:8443/x") == "proxy.testing.com:8443"
    assert canonical_addr("http://[::1]:8080") == "[::1]:8080"


def test_canonical_addr_converts_unicode_host_to_ascii():
    addr = canonical_addr("https://bücher.example/")
    assert addr.isascii()
    assert addr.endswith(":443")
    host = addr.rsplit(":", 1)[0]
    assert parse_no_proxy(host).matches(addr)