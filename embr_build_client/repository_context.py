import os
from typing import Mapping, Optional, Tuple

from embr_build_client.models import RefKind, RepositoryContext

_REF_PREFIXES = (
    ("refs/heads/", RefKind.branch),
    ("refs/tags/", RefKind.tag),
)


def parse_ref(ref: str) -> Tuple[str, RefKind]:
    """Split a git ref into its short name and kind. Pull request refs are kept whole."""
    for prefix, kind in _REF_PREFIXES:
        if ref.startswith(prefix):
            return ref[len(prefix):], kind
    if ref.startswith("refs/pull/"):
        return ref, RefKind.pull_request
    return ref, RefKind.unknown


def repository_context_from_env(env: Optional[Mapping[str, str]] = None) -> RepositoryContext:
    """Read the repository context a GitHub Actions runner exposes"""
    env = os.environ if env is None else env
    ref, kind = parse_ref(env.get("GITHUB_REF", ""))
    return RepositoryContext(
        full_repository=env.get("GITHUB_REPOSITORY", ""),
        ref=ref,
        ref_kind=kind,
        branch_or_tag=ref if kind in (RefKind.branch, RefKind.tag) else None,
        commit_sha=env.get("GITHUB_SHA", ""),
        actor=env.get("GITHUB_ACTOR", ""),
        event_name=env.get("GITHUB_EVENT_NAME", ""),
        run_id=env.get("GITHUB_RUN_ID", ""),
        workflow=env.get("GITHUB_WORKFLOW", ""),
        run_number=env.get("GITHUB_RUN_NUMBER", ""),
    )
