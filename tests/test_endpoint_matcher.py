import pytest

from tng.endpoint_matcher import (
    EndpointFilter,
    EndpointMatcher,
    EnvoyDomainMatcher,
    TngEndpoint,
)


def _matcher(**fields):
    return EndpointMatcher([EndpointFilter.from_dict(fields)])


def test_domain_match_any():
    m = _matcher(domain="*", port=9991)
    assert m.matches(TngEndpoint("www.foo.com", 9991))
    assert m.matches(TngEndpoint("*.foo.com", 9991))


def test_domain_suffix():
    m = _matcher(domain="*.foo.com", port=9991)
    assert m.matches(TngEndpoint("www.foo.com", 9991))
    assert m.matches(TngEndpoint("*.foo.com", 9991))
    assert not m.matches(TngEndpoint("www.bar.com", 9991))


def test_domain_prefix():
    m = _matcher(domain="www.foo.*", port=9991)
    assert m.matches(TngEndpoint("www.foo.com", 9991))
    assert m.matches(TngEndpoint("www.foo.cn", 9991))
    assert not m.matches(TngEndpoint("*.foo.com", 9991))
    assert not m.matches(TngEndpoint("www.bar.com", 9991))


def test_domain_exact():
    m = _matcher(domain="www.foo.com", port=9991)
    assert m.matches(TngEndpoint("www.foo.com", 9991))
    assert not m.matches(TngEndpoint("www.bar.com", 9991))


def test_invalid_regex_rejected():
    with pytest.raises(ValueError):
        _matcher(domain_regex="*", port=9991)


def test_regex_match_all():
    m = _matcher(domain_regex=".*", port=9991)
    assert m.matches(TngEndpoint("www.foo.com", 9991))
    assert m.matches(TngEndpoint("*.foo.com", 9991))
    assert m.matches(TngEndpoint("www.bar.com", 9991))


def test_regex_suffix():
    m = _matcher(domain_regex=r".*foo\.com", port=9991)
    assert m.matches(TngEndpoint("www.foo.com", 9991))
    assert m.matches(TngEndpoint("www.sub.foo.com", 9991))
    assert m.matches(TngEndpoint("new-foo.com", 9991))
    assert not m.matches(TngEndpoint("www.bar.com", 9991))


def test_port_must_match():
    m = _matcher(domain="*", port=9991)
    assert not m.matches(TngEndpoint("www.foo.com", 9992))


def test_default_port_is_80():
    m = _matcher(domain="www.foo.com")
    assert m.matches(TngEndpoint("www.foo.com", 80))
    assert not m.matches(TngEndpoint("www.foo.com", 9991))


def test_empty_filters_match_everything():
    m = EndpointMatcher([])
    assert m.matches(TngEndpoint("anything.example", 1234))


def test_any_filter_may_match():
    m = EndpointMatcher(
        [
            EndpointFilter(domain="www.foo.com", port=9991),
            EndpointFilter(domain_regex="bar", port=9992),
        ]
    )
    assert m.matches(TngEndpoint("www.bar.com", 9992))
    assert not m.matches(TngEndpoint("www.bar.com", 9991))


def test_both_domain_and_regex_rejected():
    with pytest.raises(ValueError, match="Cannot specify both"):
        _matcher(domain="www.foo.com", domain_regex=".*", port=9991)


def test_filter_without_domain_is_rejected():
    with pytest.raises(ValueError):
        _matcher(port=9991)


def test_wildcard_in_middle_rejected():
    with pytest.raises(ValueError, match="middle of the domain"):
        EnvoyDomainMatcher("www.*.com")


@pytest.mark.parametrize(
    "pattern, host, expected",
    [
        ("*", "", True),
        ("*.foo.com", "a.foo.com", True),
        ("*.foo.com", "foo.com", False),
        ("foo-*", "foo-bar", True),
        ("foo-*", "bar-foo", False),
        ("www.foo.com", "www.foo.com", True),
        ("www.foo.com", "www.foo.co", False),
    ],
)
def test_envoy_matcher(pattern, host, expected):
    assert EnvoyDomainMatcher(pattern).is_match(host) is expected