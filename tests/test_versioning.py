import json

import pytest

from cursor_usage.versioning import (
    compare_versions,
    extract_version,
    parse_download_url_version,
    parse_json_version,
    parse_manifest_version,
)


@pytest.mark.parametrize(
    "a,b,expected",
    [
        ("1.2", "1.2.1", -1),
        ("2.0.0", "1.9.9", 1),
        ("1.0", "1.0.0", 0),
        ("0.46.9", "0.46.10", -1),
        ("1.0.0.1", "1.0", 1),
        ("10.0", "9.99.99", 1),
    ],
)
def test_compare_versions_pads_with_zeros(a, b, expected):
    assert compare_versions(a, b) == expected
    assert compare_versions(b, a) == -expected


def test_compare_versions_rejects_garbage():
    with pytest.raises(ValueError):
        compare_versions("not-a-version", "1.0")


def test_json_version_field():
    assert parse_json_version(json.dumps({"version": "0.50.5"})) == "0.50.5"
    assert parse_json_version("{}") is None
    assert parse_json_version("version: 1.0") is None


def test_download_url_version():
    body = json.dumps(
        {
            "downloadUrl": "https://anysphere-binaries.s3.us-east-1.amazonaws.com/production/client/linux/x64/"
            "appimage/Cursor-0.46.9-3395357a4ee2975d5d03595e7607ee84e3db0f2c.deb.glibc2.25-x86_64.AppImage"
        }
    )
    assert parse_download_url_version(body) == "0.46.9"
    assert parse_download_url_version(json.dumps({"downloadUrl": "https://x/y.AppImage"})) is None


def test_manifest_version_line():
    manifest = "version: 0.45.11\nfiles:\n  - url: Cursor-0.45.11.AppImage\nreleaseDate: '2025-02-01'\n"
    assert parse_manifest_version(manifest) == "0.45.11"
    assert parse_manifest_version("files: []") is None


def test_chain_prefers_explicit_version_field():
    body = json.dumps({"version": "0.48.0", "downloadUrl": "https://x/Cursor-0.47.0-abc.AppImage"})
    assert extract_version(body) == "0.48.0"
    assert extract_version("version: 0.44.0") == "0.44.0"
    assert extract_version("<html>checkpoint</html>") is None
