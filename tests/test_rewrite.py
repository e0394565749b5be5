from __future__ import annotations

import pytest

from proxyconf.services.rewrite import (
    PathRewriteError,
    create_path_rewrite_middleware,
    escape_regex,
    sanitize,
    validate_path_rewrite_config,
)


class TestSanitize:
    def test_empty_values(self) -> None:
        assert sanitize(None) is None
        assert sanitize("") is None

    def test_replaces_unsafe_characters(self) -> None:
        assert sanitize("My App (prod)") == "My-App-prod"
        assert sanitize("/api/v1") == "api-v1"

    def test_collapses_dash_runs(self) -> None:
        assert sanitize("a---b__c") == "a-b-c"

    def test_truncates_to_fifty_characters(self) -> None:
        assert sanitize("x" * 80) == "x" * 50


class TestValidatePathRewriteConfig:
    def test_no_path_no_rewrite_is_valid(self) -> None:
        assert validate_path_rewrite_config(None, None, None, None).is_valid

    def test_rewrite_without_path_matching(self) -> None:
        result = validate_path_rewrite_config(None, None, "/new", "prefix")
        assert not result.is_valid
        assert "requires path matching" in result.error

    def test_rewrite_path_without_type(self) -> None:
        result = validate_path_rewrite_config("/api", "prefix", "/new", None)
        assert not result.is_valid

    def test_rewrite_type_without_path(self) -> None:
        result = validate_path_rewrite_config("/api", "prefix", None, "prefix")
        assert not result.is_valid

    def test_strip_prefix_without_rewrite_path(self) -> None:
        assert validate_path_rewrite_config("/api", "prefix", None, "stripPrefix").is_valid

    def test_unknown_match_type(self) -> None:
        result = validate_path_rewrite_config("/api", "glob", None, None)
        assert not result.is_valid
        assert "glob" in result.error

    def test_unknown_rewrite_type(self) -> None:
        result = validate_path_rewrite_config("/api", "prefix", "/x", "rename")
        assert not result.is_valid

    def test_invalid_regex_path(self) -> None:
        result = validate_path_rewrite_config("^/api/(", "regex", None, None)
        assert not result.is_valid

    @pytest.mark.parametrize("path", ["^/api/(?!internal)", "^/(?<=a)b", "^/(a)/\\1", "^/(?P<v>a)/(?P=v)"])
    def test_regex_path_outside_go_syntax(self, path: str) -> None:
        result = validate_path_rewrite_config(path, "regex", None, None)
        assert not result.is_valid
        assert "does not support" in result.error

    def test_escaped_backslash_digit_is_allowed(self) -> None:
        assert validate_path_rewrite_config("^/a\\\\1", "regex", None, None).is_valid

    def test_strip_prefix_with_exact_match_only_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        assert validate_path_rewrite_config("/api", "exact", None, "stripPrefix").is_valid
        assert "stripPrefix" in caplog.text


def test_escape_regex() -> None:
    assert escape_regex("/api/v1.0") == "/api/v1\\.0"
    assert escape_regex("/a+b(c)") == "/a\\+b\\(c\\)"


class TestCreatePathRewriteMiddleware:
    def test_exact_rewrite(self) -> None:
        result = create_path_rewrite_middleware("rewrite-r1-x", "/old", "exact", "/new", "exact")
        assert result.chain is None
        assert result.middlewares == {
            "rewrite-r1-x": {"replacePathRegex": {"regex": "^/old$", "replacement": "/new"}}
        }

    def test_prefix_rewrite_keeps_remainder(self) -> None:
        result = create_path_rewrite_middleware("rewrite-r1-x", "/api", "prefix", "/v2", "prefix")
        assert result.middlewares["rewrite-r1-x"] == {
            "replacePathRegex": {"regex": "^/api(.*)", "replacement": "/v2$1"}
        }

    def test_paths_are_normalized(self) -> None:
        result = create_path_rewrite_middleware("rewrite-r1-x", "api", "prefix", "v2", "prefix")
        assert result.middlewares["rewrite-r1-x"]["replacePathRegex"] == {
            "regex": "^/api(.*)",
            "replacement": "/v2$1",
        }

    def test_regex_rewrite_with_regex_match(self) -> None:
        result = create_path_rewrite_middleware("rewrite-r1-x", "^/user/(\\d+)", "regex", "/u/$1", "regex")
        assert result.middlewares["rewrite-r1-x"] == {
            "replacePathRegex": {"regex": "^/user/(\\d+)", "replacement": "/u/$1"}
        }

    def test_strip_prefix(self) -> None:
        result = create_path_rewrite_middleware("rewrite-r1-x", "/api", "prefix", "", "stripPrefix")
        assert result.chain is None
        assert result.middlewares == {"rewrite-r1-x": {"stripPrefix": {"prefixes": ["/api"]}}}

    def test_strip_prefix_then_add_prefix(self) -> None:
        result = create_path_rewrite_middleware("rewrite-r1-x", "/api", "prefix", "/internal", "stripPrefix")
        assert result.chain == ["rewrite-r1-x", "addprefix-r1-x"]
        assert result.middlewares["addprefix-r1-x"] == {"addPrefix": {"prefix": "/internal"}}

    def test_strip_prefix_with_exact_match(self) -> None:
        result = create_path_rewrite_middleware("rewrite-r1-x", "/health", "exact", None, "stripPrefix")
        assert result.middlewares["rewrite-r1-x"] == {
            "replacePathRegex": {"regex": "^/health$", "replacement": "/"}
        }

    def test_unsupported_rewrite_type(self) -> None:
        with pytest.raises(PathRewriteError):
            create_path_rewrite_middleware("rewrite-r1-x", "/api", "prefix", "/x", "rename")
