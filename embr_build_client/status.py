from typing import Any

from embr_build_client.models import StatusKind, StatusVocabulary

DEFAULT_VOCABULARY = StatusVocabulary()


def _lookup(body: dict, key: str) -> Any:
    """Read a field from the top level, falling back to the nested build object"""
    if body.get(key) is not None:
        return body[key]
    build = body.get("build")
    if isinstance(build, dict):
        return build.get(key)
    return None


def interpret(body: Any, vocabulary: StatusVocabulary = DEFAULT_VOCABULARY) -> StatusKind:
    """Map a status response body to a StatusKind.

    Anything that is not a JSON object is Unknown. Unrecognized or missing
    status tokens are Running, unless ``complete`` is true.
    """
    if not isinstance(body, dict):
        return StatusKind.unknown

    token = _lookup(body, "status")
    if isinstance(token, str):
        if token in vocabulary.failure_tokens:
            return StatusKind.failed
        if token in vocabulary.success_tokens:
            return StatusKind.succeeded

    if _lookup(body, "complete") is True:
        return StatusKind.succeeded
    return StatusKind.running
