from pathlib import Path
from typing import Any, Optional

from loguru import logger

from embr_build_client.errors import (
    ArtifactNotFound,
    ConfigurationError,
    NoBuildIdentifier,
    TriggerRequestError,
)
from embr_build_client.models import (
    BuildConfig,
    RefKind,
    RepositoryContext,
    TriggerResult,
)
from embr_build_client.status import interpret
from embr_build_client.transport import Transport

JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}
UPLOAD_HEADERS = {"Accept": "application/json", "Content-Type": "application/zip"}


def resolve_branch(context: RepositoryContext) -> str:
    """Pick the branch name sent with the trigger request"""
    if context.ref_kind in (RefKind.branch, RefKind.tag) and context.branch_or_tag:
        return context.branch_or_tag
    if context.ref_kind == RefKind.pull_request and context.ref:
        return context.ref
    logger.warning(
        "Could not determine branch name from context, using commit SHA as fallback"
    )
    return context.commit_sha


def extract_build_id(raw: Any) -> Optional[str]:
    if not isinstance(raw, dict):
        return None
    build = raw.get("build")
    candidates = [build.get("id") if isinstance(build, dict) else None]
    candidates += [raw.get("id"), raw.get("buildId")]
    for candidate in candidates:
        if candidate is not None and candidate != "":
            return str(candidate)
    return None


def _to_trigger_result(config: BuildConfig, outcome) -> TriggerResult:
    if not outcome.ok:
        raise TriggerRequestError(outcome)

    logger.info(f"Response status: {outcome.status_code}")
    logger.debug(f"Response data: {outcome.body}")

    build_id = extract_build_id(outcome.body)
    if build_id is None:
        raise NoBuildIdentifier(outcome.body)

    immediate = None
    if config.detect_immediate_status:
        immediate = interpret(outcome.body, config.vocabulary)
    return TriggerResult(build_id=build_id, immediate_status=immediate, raw=outcome.body)


async def trigger_build(
    transport: Transport, config: BuildConfig, branch: str, commit_sha: str
) -> TriggerResult:
    """Start a build of ``branch`` at ``commit_sha``"""
    url = f"{config.endpoint_base}/projects/{config.project_id}/builds"
    logger.info(f"Creating build at: {url}")
    logger.info(f"Branch: {branch}")
    logger.info(f"Commit SHA: {commit_sha}")

    outcome = await transport.send(
        "POST",
        url,
        json_body={"branch": branch, "commitSha": commit_sha},
        headers=JSON_HEADERS,
        timeout_ms=config.request_timeout_ms,
    )
    return _to_trigger_result(config, outcome)


async def trigger_upload(
    transport: Transport, config: BuildConfig, environment_id: str, artifact_path: str
) -> TriggerResult:
    """Upload a zip archive to an environment and start a build from it"""
    if not config.vocabulary.supports_upload:
        raise ConfigurationError("upload mode is not supported for this service")

    path = Path(artifact_path)
    if not path.is_file():
        raise ArtifactNotFound(artifact_path)
    payload = path.read_bytes()

    url = (
        f"{config.endpoint_base}/projects/{config.project_id}"
        f"/environments/{environment_id}/builds/upload"
    )
    logger.info(f"Uploading {path.name} ({len(payload)} bytes) to: {url}")

    outcome = await transport.send(
        "POST",
        url,
        data=payload,
        headers=UPLOAD_HEADERS,
        timeout_ms=config.request_timeout_ms,
    )
    return _to_trigger_result(config, outcome)
