"""Tests for origin normalization and policy decisions."""
import pytest

from auth_broker.errors import ClientError, ConfigError
from auth_broker.origin import WILDCARD, OriginPolicy, normalize_origin


def test_normalize_strips_path_query_and_fragment():
    assert normalize_origin("https://example.github.io/admin/") == "https://example.github.io"
    assert normalize_origin("https://example.github.io/admin?x=1#top") == "https://example.github.io"


def test_normalize_drops_default_port_and_keeps_others():
    assert normalize_origin("https://example.com:443/") == "https://example.com"
    assert normalize_origin("http://example.com:80") == "http://example.com"
    assert normalize_origin("http://localhost:8080/admin") == "http://localhost:8080"


def test_normalize_lowercases_scheme_and_host():
    assert normalize_origin("HTTPS://Example.GitHub.IO") == "https://example.github.io"


@pytest.mark.parametrize("value", [None, "", "   ", "null", "example.com", "ftp://example.com", "https://host:notaport"])
def test_normalize_rejects_non_http_origins(value):
    assert normalize_origin(value) is None


def test_configured_path_behaves_like_bare_origin():
    with_path = OriginPolicy("https://example.github.io/admin")
    bare = OriginPolicy("https://example.github.io")
    for header in ("https://example.github.io", "https://evil.example", "http://example.github.io"):
        assert with_path.check(header).allowed == bare.check(header).allowed
    assert with_path.relay_target() == bare.relay_target() == "https://example.github.io"


def test_check_allows_missing_origin_header():
    decision = OriginPolicy("https://example.github.io").check(None)
    assert decision.allowed is True
    assert decision.origin is None


def test_check_rejects_other_origin_without_raising():
    decision = OriginPolicy("https://example.github.io").check("https://evil.example")
    assert decision.allowed is False
    assert decision.reason == "origin not allowed"


def test_check_rejects_everything_when_no_allowlist_and_strict():
    assert OriginPolicy(None).check("https://example.github.io").allowed is False


def test_permissive_mode_is_explicit_opt_in():
    assert OriginPolicy(None, allow_any=True).check("https://anything.example").allowed is True


def test_relay_target_falls_back_to_wildcard_without_allowlist():
    policy = OriginPolicy(None)
    assert policy.relay_target() == WILDCARD
    assert any("ALLOWED_ORIGIN" in w for w in policy.config_warnings())


def test_relay_target_ignores_hint_when_allowlist_configured():
    policy = OriginPolicy("https://example.github.io", allow_any=True)
    assert policy.relay_target("https://other.example") == "https://example.github.io"


def test_resolve_hint_rejects_mismatched_origin():
    with pytest.raises(ClientError):
        OriginPolicy("https://example.github.io").resolve_hint("https://evil.example/admin")


def test_resolve_hint_accepts_matching_origin_with_path():
    policy = OriginPolicy("https://example.github.io")
    assert policy.resolve_hint("https://example.github.io/admin/") == "https://example.github.io"


def test_resolve_hint_required_when_configured():
    with pytest.raises(ClientError):
        OriginPolicy("https://example.github.io", require_origin=True).resolve_hint(None)


def test_invalid_configured_origin_is_config_error():
    with pytest.raises(ConfigError):
        OriginPolicy("not a url")


def test_cors_options_follow_policy():
    assert OriginPolicy("https://example.github.io/admin").cors_options() == {
        "allow_origins": ["https://example.github.io"]
    }
    assert OriginPolicy(None).cors_options() == {"allow_origins": []}
    assert "allow_origin_regex" in OriginPolicy(None, allow_any=True).cors_options()
