import json

import pytest

from shared.identity import IdentityMapError, load_identity_map, parse_identity_map


def test_load_identity_map(tmp_path):
    path = tmp_path / "verifiers.json"
    path.write_text(json.dumps({"version": 1, "verifiers": {"123": " Alice "}}))
    identity_map = load_identity_map(path)
    assert len(identity_map) == 1
    assert identity_map.lookup(123) == "Alice"
    assert identity_map.resolve("123", "alice_discord") == ("Alice", True)
    assert identity_map.resolve(456, "bob") == ("bob", False)


def test_missing_file_yields_empty_map(tmp_path):
    identity_map = load_identity_map(tmp_path / "absent.json")
    assert len(identity_map) == 0
    assert identity_map.lookup(None) is None


@pytest.mark.parametrize(
    "document",
    [
        [],
        {"version": 2, "verifiers": {}},
        {"version": 1, "verifiers": []},
        {"version": 1, "verifiers": {"abc": "Alice"}},
        {"version": 1, "verifiers": {"123": ""}},
    ],
)
def test_malformed_documents_are_rejected(document):
    with pytest.raises(IdentityMapError):
        parse_identity_map(document)


def test_invalid_json_is_rejected(tmp_path):
    path = tmp_path / "verifiers.json"
    path.write_text("{oops")
    with pytest.raises(IdentityMapError):
        load_identity_map(path)
