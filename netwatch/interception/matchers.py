"""Reusable request predicates for building interception policies.

Matchers are pure, synchronous functions of a ``RequestView``. They are
composed explicitly: each policy calls its matcher at the top of its decide
function and defers (returns ``None``) when it does not match.
"""

import re
from typing import Callable, Iterable

from ..models.interception import RequestView, ResourceType
from .exceptions import InvalidPolicyParamsError


Matcher = Callable[[RequestView], bool]


def url_contains(substring: str) -> Matcher:
    """Case-sensitive substring match against the request URL."""

    def match(view: RequestView) -> bool:
        return substring in view.url

    match.__name__ = f"url_contains({substring!r})"
    return match


def url_matches(pattern: str) -> Matcher:
    """Regex search against the full request URL.

    Raises:
        InvalidPolicyParamsError: If the pattern does not compile
    """
    try:
        compiled = re.compile(pattern)
    except re.error as e:
        raise InvalidPolicyParamsError(f"Invalid URL pattern '{pattern}': {e}")

    def match(view: RequestView) -> bool:
        return compiled.search(view.url) is not None

    match.__name__ = f"url_matches({pattern!r})"
    return match


def url_pattern(pattern: str, is_regex: bool = False) -> Matcher:
    """Build a substring or regex URL matcher."""
    if is_regex:
        return url_matches(pattern)
    return url_contains(pattern)


def resource_type_in(types: Iterable[str]) -> Matcher:
    """Exact match against the driver-reported resource category.

    Raises:
        InvalidPolicyParamsError: If a category is not a known resource type
    """
    allowed = set()
    for value in types:
        try:
            allowed.add(ResourceType(str(value).lower()))
        except ValueError:
            valid = ", ".join(t.value for t in ResourceType)
            raise InvalidPolicyParamsError(
                f"Unknown resource type '{value}'. Valid types: {valid}"
            )

    def match(view: RequestView) -> bool:
        return view.resource_type in allowed

    match.__name__ = f"resource_type_in({sorted(t.value for t in allowed)})"
    return match


def any_of(matchers: Iterable[Matcher]) -> Matcher:
    """True when any of the given matchers is true."""
    matchers = tuple(matchers)

    def match(view: RequestView) -> bool:
        return any(m(view) for m in matchers)

    return match
