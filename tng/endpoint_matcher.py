"""Matching of connection endpoints against destination filters."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, NamedTuple

DEFAULT_PORT = 80


@dataclass(frozen=True)
class EndpointFilter:
    """A destination filter: a domain pattern or a domain regex, plus a port."""

    domain: str | None = None
    domain_regex: str | None = None
    port: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EndpointFilter:
        """Build a filter from a configuration mapping."""
        return cls(
            domain=data.get("domain"),
            domain_regex=data.get("domain_regex"),
            port=data.get("port"),
        )


@dataclass(frozen=True)
class TngEndpoint:
    """A destination host and port."""

    host: str
    port: int


class _Kind(enum.Enum):
    EXACT = "exact"
    SUFFIX = "suffix"
    PREFIX = "prefix"
    ANY = "any"


class EnvoyDomainMatcher:
    """Domain matcher following the envoy virtual host domain rules.

    Supported forms are exact names (``www.foo.com``), suffix wildcards
    (``*.foo.com``), prefix wildcards (``foo.*``) and ``*`` matching anything.
    """

    def __init__(self, domain: str) -> None:
        if domain == "*":
            self._kind, self._pattern = _Kind.ANY, ""
        elif domain.startswith("*"):
            self._kind, self._pattern = _Kind.SUFFIX, domain[1:]
        elif domain.endswith("*"):
            self._kind, self._pattern = _Kind.PREFIX, domain[:-1]
        elif "*" not in domain:
            self._kind, self._pattern = _Kind.EXACT, domain
        else:
            raise ValueError(
                f"The wildcard * should not be used in the middle of the domain: {domain}"
            )

    def is_match(self, haystack: str) -> bool:
        """Return whether ``haystack`` matches this domain pattern."""
        if self._kind is _Kind.EXACT:
            return haystack == self._pattern
        if self._kind is _Kind.SUFFIX:
            return haystack.endswith(self._pattern)
        if self._kind is _Kind.PREFIX:
            return haystack.startswith(self._pattern)
        return True

    def __repr__(self) -> str:
        return f"EnvoyDomainMatcher({self._kind.value}, {self._pattern!r})"


class _MatchItem(NamedTuple):
    matches_host: Callable[[str], bool]
    port: int


def _build_item(dst_filter: EndpointFilter) -> _MatchItem:
    if dst_filter.domain is not None and dst_filter.domain_regex is not None:
        raise ValueError("Cannot specify both 'domain' and 'domain_regex'")

    if dst_filter.domain is not None:
        matches_host = EnvoyDomainMatcher(dst_filter.domain).is_match
    else:
        pattern = dst_filter.domain_regex if dst_filter.domain_regex is not None else "*"
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise ValueError("The value of 'domain' should be a regex") from exc

        def matches_host(host: str, _regex: re.Pattern[str] = regex) -> bool:
            return _regex.search(host) is not None

    port = dst_filter.port if dst_filter.port is not None else DEFAULT_PORT
    return _MatchItem(matches_host, port)


class EndpointMatcher:
    """Decides whether an endpoint is selected by a list of filters."""

    def __init__(self, dst_filters: Iterable[EndpointFilter]) -> None:
        self._items = [_build_item(f) for f in dst_filters]

    def matches(self, endpoint: TngEndpoint) -> bool:
        """Return True if any filter matches, or if there are no filters."""
        if not self._items:
            return True
        return any(
            item.matches_host(endpoint.host) and item.port == endpoint.port
            for item in self._items
        )