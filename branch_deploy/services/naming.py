"""Branch, stack and image naming.

Service names must:
- Start with a letter
- Contain only lowercase letters, numbers, and hyphens
- Be at most ``max_length`` characters (63 on Cloud Run, 32 on Container Apps)
- Not end with a hyphen
"""

import hashlib
import re

HASH_LENGTH = 6
# "-" plus the hash suffix
SUFFIX_LENGTH = HASH_LENGTH + 1
# One letter plus the suffix, and the length of the "b-<hash>" fallback
MIN_LENGTH = SUFFIX_LENGTH + 1

_INVALID_CHARS = re.compile(r"[^a-z0-9]")
_HYPHEN_RUNS = re.compile(r"-+")


def _branch_hash(branch: str) -> str:
    return hashlib.sha256(branch.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def normalize_branch(branch: str, max_length: int = 63) -> str:
    """Convert a branch name to a DNS-label-safe service name.

    Over-long names are truncated and suffixed with a hash of the
    original branch string, so branches that share a long prefix still
    map to different names. A ``max_length`` below 8 is raised to 8, the
    shortest name that still carries the hash.

    >>> normalize_branch("Feature/ABC")
    'feature-abc'
    >>> normalize_branch("123-feature")
    'b-123-feature'
    """
    max_length = max(max_length, MIN_LENGTH)

    normalized = _INVALID_CHARS.sub("-", branch.lower())
    normalized = _HYPHEN_RUNS.sub("-", normalized).strip("-")

    if not normalized:
        # Nothing usable survived; fall back to a name derived from the hash
        return f"b-{_branch_hash(branch)}"

    # Ensure it starts with a letter
    if normalized[0].isdigit():
        normalized = f"b-{normalized}"

    if len(normalized) > max_length:
        prefix = normalized[: max_length - SUFFIX_LENGTH].rstrip("-")
        normalized = f"{prefix}-{_branch_hash(branch)}"

    return normalized.rstrip("-")


def stack_identifier(org: str, app_name: str, service_name: str) -> str:
    """Pulumi stack for one (app, branch)."""
    return f"{org}/app/{app_name}-{service_name}"


def image_reference(registry_url: str, app_name: str, service_name: str) -> str:
    """Image tag for one (app, branch). A prior push under it is the cache."""
    return f"{registry_url}/{app_name}:{service_name}"
