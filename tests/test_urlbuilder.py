from __future__ import annotations

import pytest

from saas_connectors.core.errors import ErrorTag
from saas_connectors.transport.urlbuilder import URL, URLParseError, new_url


def test_with_query_sorts_parameters_and_remove_query_drops_them():
    url = URL.from_string("https://video.google.co.uk:80/videoplay?docid=-7246927612831078230&hl=en")

    url.with_query("compact", "True")
    assert url.to_string() == "https://video.google.co.uk:80/videoplay?compact=True&docid=-7246927612831078230&hl=en"

    url.remove_query("docid")
    assert url.to_string() == "https://video.google.co.uk:80/videoplay?compact=True&hl=en"


def test_encoding_exception_keeps_literal_equals_sign():
    raw = "https://test?starting_after=WzE3MTU2OTU2NzkwMDAsIjU3Y2NjMmU2LTEyODctNDEwZC1iMDI3LTVjOGU4NzIzMzU3YyIsMl0="
    url = URL.from_string(raw).add_encoding_exceptions({"%3D": "="})

    assert url.to_string() == raw
    assert "%3D" not in url.to_string()


def test_without_exception_equals_sign_is_escaped():
    url = URL.from_string("https://test").with_query("cursor", "abc=")

    assert url.to_string() == "https://test?cursor=abc%3D"


def test_round_trip_preserves_structure():
    url = new_url("https://api.example.com/v1/", "contacts", "42")
    url.with_query_list("fields", ["email", "name"]).with_query("q", "a b&c")

    reparsed = URL.from_string(url.to_string())

    assert reparsed == url
    assert reparsed.path == "/v1/contacts/42"


def test_query_mutation_keeps_last_value_per_name():
    url = URL.from_string("https://api.example.com/items")
    url.with_query("limit", "10")
    url.with_query_list("tag", ["a", "b"])
    url.with_query("limit", "50")
    url.remove_query("tag")
    url.with_query("tag", "c")

    assert url.query_params() == {"limit": ["50"], "tag": ["c"]}
    assert url.has_query("limit")
    assert url.get_first_query("missing") == ("", False)


def test_path_is_kept_verbatim():
    url = URL.from_string("https://example.com/a//b/../c%2Fd?x=1")

    assert url.path == "/a//b/../c%2Fd"
    assert url.to_string() == "https://example.com/a//b/../c%2Fd?x=1"


def test_add_path_collapses_slashes_and_merges_query():
    url = new_url("https://example.com/services/data/", "/v59.0/", "query?q=SELECT+Id")

    assert url.path == "/services/data/v59.0/query"
    assert url.get_first_query("q") == ("SELECT Id", True)


def test_raw_add_to_path_appends_without_separator():
    url = new_url("https://org.crm.dynamics.com/api/data/v9.2", "accounts").raw_add_to_path("(42)")

    assert url.to_string() == "https://org.crm.dynamics.com/api/data/v9.2/accounts(42)"


def test_unencoded_query_is_emitted_raw():
    url = URL.from_string("https://example.com/search").with_unencoded_query("filter[name]", "a,b")

    assert url.to_string() == "https://example.com/search?filter[name]=a,b"


@pytest.mark.parametrize("raw", ["not a url", "/relative/path", "https://host:notaport/"])
def test_invalid_urls_raise_parse_error(raw):
    with pytest.raises(URLParseError) as excinfo:
        URL.from_string(raw)

    assert excinfo.value.tag is ErrorTag.PARSE_ERROR
