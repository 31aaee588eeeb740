import json
from typing import Any, Dict, Optional
from urllib.parse import quote

from embr_build_client.models import (
    BuildResult,
    DerivedFields,
    Outcome,
    PollOutcome,
    StatusKind,
    TriggerResult,
)


def _dig(payload: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(payload, dict):
            return None
        payload = payload.get(key)
    return payload


def _first(payload: Any, *paths) -> Any:
    for path in paths:
        value = _dig(payload, *path)
        if value is not None:
            return value
    return None


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def build_log_url(endpoint_base: str, project_id: str, build_id: str) -> str:
    build_path = quote(build_id, safe="")
    return f"{endpoint_base.rstrip('/')}/projects/{project_id}/builds/{build_path}/logs"


def derive_fields(payload: Any, log_url: Optional[str] = None) -> DerivedFields:
    """Best-effort extraction of build details from a response payload"""
    duration = _first(payload, ("build", "durationSeconds"), ("durationSeconds",))
    return DerivedFields(
        build_number=_as_str(_first(payload, ("build", "buildNumber"), ("buildNumber",))),
        deployment_url=_as_str(_first(payload, ("deployment", "url"), ("deploymentUrl",))),
        log_url=log_url,
        duration_seconds=duration if isinstance(duration, (int, float)) else None,
    )


def report(
    trigger_result: TriggerResult,
    poll_outcome: Optional[PollOutcome] = None,
    log_url: Optional[str] = None,
) -> BuildResult:
    """Turn the trigger result and, if polling ran, its outcome into the final BuildResult.

    Without a poll outcome the trigger's immediate status must be terminal.
    """
    if poll_outcome is None:
        if trigger_result.immediate_status == StatusKind.succeeded:
            outcome = Outcome.succeeded
        elif trigger_result.immediate_status == StatusKind.failed:
            outcome = Outcome.failed
        else:
            raise ValueError("a poll outcome is required unless the trigger status is terminal")
        payload = trigger_result.raw
        attempts = 0
    else:
        outcome = poll_outcome.outcome
        payload = poll_outcome.raw_response
        attempts = len(poll_outcome.attempts)

    message = _first(payload, ("build", "statusMessage"), ("statusMessage",))
    return BuildResult(
        outcome=outcome,
        raw_response=payload,
        build_id=trigger_result.build_id,
        message=_as_str(message),
        derived=derive_fields(payload, log_url),
        attempts=attempts,
    )


def result_outputs(result: BuildResult) -> Dict[str, str]:
    """Step outputs published for the surrounding workflow"""
    derived = result.derived
    return {
        "status": result.outcome.value,
        "build-id": result.build_id or "",
        "build-number": derived.build_number or "",
        "log-path": derived.log_url or "",
        "deployment-url": derived.deployment_url or "",
        "response": json.dumps(result.raw_response, separators=(",", ":")),
    }
