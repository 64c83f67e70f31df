"""Tests for header redaction."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from houdini.core.sanitize import REDACTED, SENSITIVE_HEADERS, sanitize_headers

pytestmark = [pytest.mark.unit, pytest.mark.core, pytest.mark.tier(0)]


class TestSanitizeHeaders:
    def test_redacts_sensitive_headers(self) -> None:
        headers = {
            "Authorization": "Bearer abc",
            "Cookie": "session=1",
            "X-Api-Key": "key",
            "X-Auth-Token": "tok",
            "Accept": "application/json",
        }

        assert sanitize_headers(headers) == {
            "Authorization": REDACTED,
            "Cookie": REDACTED,
            "X-Api-Key": REDACTED,
            "X-Auth-Token": REDACTED,
            "Accept": "application/json",
        }

    def test_matching_ignores_case(self) -> None:
        assert sanitize_headers({"AUTHORIZATION": "x"}) == {"AUTHORIZATION": REDACTED}

    def test_accepts_pairs(self) -> None:
        pairs = [("cookie", "a=b"), ("user-agent", "curl/8")]
        assert sanitize_headers(pairs) == {"cookie": REDACTED, "user-agent": "curl/8"}

    def test_none_gives_empty_dict(self) -> None:
        assert sanitize_headers(None) == {}

    def test_input_not_mutated(self) -> None:
        headers = {"Authorization": "Bearer abc"}
        sanitize_headers(headers)
        assert headers == {"Authorization": "Bearer abc"}


_header_names = st.one_of(
    st.sampled_from(sorted(SENSITIVE_HEADERS)).map(
        lambda name: "".join(
            c.upper() if i % 2 else c for i, c in enumerate(name)
        )
    ),
    st.text(alphabet="abcdefghijklmnopqrstuvwxyz-", min_size=1, max_size=20),
)


@given(st.dictionaries(_header_names, st.text(max_size=30), max_size=10))
def test_sensitive_values_never_survive(headers: dict[str, str]) -> None:
    """No credential header keeps its value; all others are untouched."""
    result = sanitize_headers(headers)

    assert result.keys() == headers.keys()
    for name, value in result.items():
        if name.lower() in SENSITIVE_HEADERS:
            assert value == REDACTED
        else:
            assert value == headers[name]
