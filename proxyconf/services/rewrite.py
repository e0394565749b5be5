"""
Path rewrite middleware generation.
Turns a target's path match and rewrite settings into Traefik middleware definitions.
"""
import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

PATH_MATCH_TYPES = ("exact", "prefix", "regex")
REWRITE_PATH_TYPES = ("exact", "prefix", "regex", "stripPrefix")

_REGEX_SPECIAL = re.compile(r"[.*+?^${}()|[\]\\]")
_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9-]")
_DASH_RUN = re.compile(r"-+")
# Constructs Python accepts but Traefik's RE2 engine rejects: lookaround, atomic groups, backreferences
_RE2_UNSUPPORTED = re.compile(r"\(\?(?:=|!|<=|<!|>|P=)|(?<!\\)\\[1-9]")


class PathRewriteError(ValueError):
    """Raised when a rewrite middleware cannot be generated."""


@dataclass(frozen=True)
class PathRewriteValidation:
    is_valid: bool
    error: str | None = None


@dataclass(frozen=True)
class RewriteMiddleware:
    """Middleware definitions to merge into the config, plus the router chain when more than one applies."""
    middlewares: dict[str, dict]
    chain: list[str] | None = None


def sanitize(value: str | None) -> str | None:
    """Reduce a value to a string usable inside Traefik object names."""
    if not value:
        return None
    value = value[:50]
    value = _UNSAFE_NAME_CHARS.sub("-", value)
    value = _DASH_RUN.sub("-", value)
    return value.strip("-")


def escape_regex(value: str) -> str:
    return _REGEX_SPECIAL.sub(lambda m: "\\" + m.group(0), value)


def validate_path_rewrite_config(
    path: str | None,
    path_match_type: str | None,
    rewrite_path: str | None,
    rewrite_path_type: str | None,
) -> PathRewriteValidation:
    """
    Check that a path match / rewrite combination can be turned into a route.
    Rewriting requires path matching; rewrite path and type go together except for stripPrefix.
    Regex paths are compiled with Python's re and additionally screened for lookaround,
    atomic groups and backreferences, which Traefik (Go RE2) rejects.
    """
    if not path or not path_match_type:
        if rewrite_path or rewrite_path_type:
            return PathRewriteValidation(False, "Path rewriting requires path matching to be configured")
        return PathRewriteValidation(True)

    if path_match_type not in PATH_MATCH_TYPES:
        return PathRewriteValidation(False, f"Invalid pathMatchType: {path_match_type}")

    if path_match_type == "regex":
        try:
            re.compile(path)
        except re.error:
            return PathRewriteValidation(False, f"Invalid regex pattern in path: {path}")
        if _RE2_UNSUPPORTED.search(path):
            return PathRewriteValidation(False, f"Regex pattern in path uses syntax Traefik does not support: {path}")

    if rewrite_path_type != "stripPrefix":
        if bool(rewrite_path) != bool(rewrite_path_type):
            return PathRewriteValidation(False, "Both rewritePath and rewritePathType must be specified together")

    if not rewrite_path_type:
        return PathRewriteValidation(True)

    if rewrite_path_type not in REWRITE_PATH_TYPES:
        return PathRewriteValidation(False, f"Invalid rewritePathType: {rewrite_path_type}")

    if rewrite_path_type == "stripPrefix" and path_match_type != "prefix":
        logger.warning(
            f"stripPrefix rewrite type is most effective with prefix path matching. Current match type: {path_match_type}"
        )

    return PathRewriteValidation(True)


def _match_pattern(path: str, path_match_type: str, anchored_end: bool) -> str:
    """Regex matching the configured path; prefixes keep the remainder in group 1."""
    if path_match_type == "regex":
        return path
    if path_match_type == "prefix" and not anchored_end:
        return f"^{escape_regex(path)}(.*)"
    return f"^{escape_regex(path)}$"


def create_path_rewrite_middleware(
    name: str,
    path: str,
    path_match_type: str,
    rewrite_path: str,
    rewrite_path_type: str,
) -> RewriteMiddleware:
    """
    Build the middleware(s) rewriting a matched path before it reaches the backend.

    exact       replace the whole path with rewrite_path
    prefix      swap the matched prefix for rewrite_path, keeping the remainder
    regex       replacePathRegex with rewrite_path as the replacement (supports $1...)
    stripPrefix drop the matched prefix, optionally adding rewrite_path in front
    """
    if path_match_type != "regex" and not path.startswith("/"):
        path = f"/{path}"
    if rewrite_path_type != "regex" and rewrite_path and not rewrite_path.startswith("/"):
        rewrite_path = f"/{rewrite_path}"

    middlewares: dict[str, dict] = {}

    if rewrite_path_type == "exact":
        middlewares[name] = {
            "replacePathRegex": {"regex": f"^{escape_regex(path)}$", "replacement": rewrite_path}
        }

    elif rewrite_path_type == "prefix":
        if path_match_type == "prefix":
            replacement = f"{rewrite_path}$1"
        else:
            replacement = rewrite_path
        middlewares[name] = {
            "replacePathRegex": {"regex": _match_pattern(path, path_match_type, False), "replacement": replacement}
        }

    elif rewrite_path_type == "regex":
        middlewares[name] = {
            "replacePathRegex": {"regex": _match_pattern(path, path_match_type, False), "replacement": rewrite_path}
        }

    elif rewrite_path_type == "stripPrefix":
        if path_match_type == "prefix":
            middlewares[name] = {"stripPrefix": {"prefixes": [path]}}
            if rewrite_path and rewrite_path != "/":
                add_prefix_name = f"addprefix-{name.removeprefix('rewrite-')}"
                middlewares[add_prefix_name] = {"addPrefix": {"prefix": rewrite_path}}
                return RewriteMiddleware(middlewares, [name, add_prefix_name])
        else:
            middlewares[name] = {
                "replacePathRegex": {
                    "regex": _match_pattern(path, path_match_type, True),
                    "replacement": rewrite_path or "/",
                }
            }

    else:
        raise PathRewriteError(f"Unsupported rewritePathType: {rewrite_path_type}")

    return RewriteMiddleware(middlewares)
