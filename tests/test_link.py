"""
Tests for target address resolution.
"""

from urllib.parse import parse_qs, urlsplit

import pytest

from embedlink.link import create_link, origin_of


def query_of(address: str) -> dict[str, list[str]]:
    return parse_qs(urlsplit(address).query, keep_blank_values=True)


class TestCreateLink:
    """Tests for create_link()."""

    @pytest.mark.parametrize("base_url", ["https://example.com", "https://example.com/"])
    def test_client_id_and_customization(self, base_url):
        """Test query parameters regardless of base trailing slash."""
        address = create_link("cid123", "/embedded", {"theme": "dark"}, base_url=base_url)

        url = urlsplit(address)
        assert url.scheme == "https"
        assert url.netloc == "example.com"
        assert url.path == "/embedded"
        assert query_of(address) == {"clientId": ["cid123"], "theme": ["dark"]}

    def test_absolute_path_replaces_base_path(self):
        """Test an absolute path is resolved against the host."""
        address = create_link("cid", "/sdk/wallet", base_url="https://example.com/app/")

        assert urlsplit(address).path == "/sdk/wallet"

    def test_none_serializes_as_empty(self):
        """Test absent values become empty parameters."""
        address = create_link("cid", "/embedded", {"theme": None})

        assert query_of(address)["theme"] == [""]

    def test_number_values(self):
        """Test numeric values are stringified."""
        address = create_link("cid", "/embedded", {"fontSize": 14, "zero": 0})

        query = query_of(address)
        assert query["fontSize"] == ["14"]
        assert query["zero"] == ["0"]

    def test_bool_values(self):
        """Test booleans serialize like URLSearchParams."""
        address = create_link("cid", "/embedded", {"showBorder": True})

        assert query_of(address)["showBorder"] == ["true"]

    def test_customization_overrides_client_id(self):
        """Test later values win for the same key."""
        address = create_link("cid", "/embedded", {"clientId": "other"})

        assert query_of(address)["clientId"] == ["other"]

    def test_path_query_is_kept_and_overridden(self):
        """Test existing query parameters of the path."""
        address = create_link("cid", "/embedded?theme=light&lang=en", {"theme": "dark"})

        query = query_of(address)
        assert query["theme"] == ["dark"]
        assert query["lang"] == ["en"]
        assert query["clientId"] == ["cid"]

    def test_deterministic(self):
        """Test repeated calls produce the same address."""
        first = create_link("cid", "/embedded", {"a": 1, "b": "x"})
        second = create_link("cid", "/embedded", {"a": 1, "b": "x"})

        assert first == second

    def test_values_are_encoded(self):
        """Test reserved characters are escaped."""
        address = create_link("cid", "/embedded", {"color": "#fff&x=1"})

        assert query_of(address)["color"] == ["#fff&x=1"]
        assert "x" not in query_of(address)


class TestOriginOf:
    """Tests for origin_of()."""

    def test_origin(self):
        assert origin_of("https://example.com/embedded?clientId=1") == "https://example.com"

    def test_origin_with_port(self):
        assert origin_of("http://127.0.0.1:8765/x") == "http://127.0.0.1:8765"
