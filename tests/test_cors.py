"""Tests for the CORS header builder."""

from draft_relay.core.cors import cors_headers


def test_echoes_origin():
    headers = cors_headers("https://carhart.example")
    assert headers["Access-Control-Allow-Origin"] == "https://carhart.example"


def test_wildcard_without_origin():
    assert cors_headers(None)["Access-Control-Allow-Origin"] == "*"
    assert cors_headers("")["Access-Control-Allow-Origin"] == "*"


def test_fixed_fields():
    assert cors_headers("https://a.example") == {
        "Access-Control-Allow-Origin": "https://a.example",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Max-Age": "86400",
        "Vary": "Origin",
    }
