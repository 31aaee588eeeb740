import json

import aiohttp
import pytest
from build_server import Reply
from embr_build_client.errors import (
    ArtifactNotFound,
    ConfigurationError,
    NoBuildIdentifier,
    TriggerRequestError,
)
from embr_build_client.models import (
    BuildMode,
    RefKind,
    RepositoryContext,
    StatusKind,
    StatusVocabulary,
)
from embr_build_client.transport import HttpError, Transport
from embr_build_client.trigger import (
    extract_build_id,
    resolve_branch,
    trigger_build,
    trigger_upload,
)


def _context(ref_kind, ref, branch_or_tag=None):
    return RepositoryContext(
        full_repository="octo/app",
        ref=ref,
        ref_kind=ref_kind,
        branch_or_tag=branch_or_tag,
        commit_sha="c0ffee",
    )


@pytest.mark.parametrize(
    "context, expected",
    [
        (_context(RefKind.branch, "main", "main"), "main"),
        (_context(RefKind.tag, "v1.2.0", "v1.2.0"), "v1.2.0"),
        (_context(RefKind.pull_request, "refs/pull/9/merge"), "refs/pull/9/merge"),
        (_context(RefKind.unknown, "refs/remotes/x"), "c0ffee"),
        (_context(RefKind.branch, ""), "c0ffee"),
    ],
)
def test_resolve_branch(context, expected):
    assert resolve_branch(context) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ({"build": {"id": "b1"}}, "b1"),
        ({"id": 12}, "12"),
        ({"buildId": "x9"}, "x9"),
        ({"build": {"id": ""}, "id": "fallback"}, "fallback"),
        ({"build": {"status": "Queued"}}, None),
        ("b1", None),
        (None, None),
    ],
)
def test_extract_build_id(raw, expected):
    assert extract_build_id(raw) == expected


@pytest.mark.asyncio
async def test_trigger_build_posts_branch_and_commit(start_server, make_config):
    """The trigger POSTs branch and commit as JSON and returns the build handle."""
    server, base_url = await start_server()
    config = make_config(base_url)

    async with aiohttp.ClientSession() as session:
        result = await trigger_build(Transport(session), config, "main", "a" * 40)

    assert result.build_id == "b1"
    assert result.immediate_status == StatusKind.running
    request = server.requests[0]
    assert request["method"] == "POST"
    assert request["path"] == "/projects/proj-1/builds"
    assert request["headers"]["Content-Type"] == "application/json"
    assert request["headers"]["Accept"] == "application/json"
    assert json.loads(request["body"]) == {"branch": "main", "commitSha": "a" * 40}


@pytest.mark.asyncio
async def test_trigger_detects_immediate_terminal_status(start_server, make_config):
    server, base_url = await start_server(
        trigger_reply=Reply({"build": {"id": "b2", "status": "Failed", "statusMessage": "compile error"}})
    )

    async with aiohttp.ClientSession() as session:
        result = await trigger_build(Transport(session), make_config(base_url), "main", "abc")

    assert result.build_id == "b2"
    assert result.immediate_status == StatusKind.failed


@pytest.mark.asyncio
async def test_immediate_status_detection_can_be_disabled(start_server, make_config):
    server, base_url = await start_server(
        trigger_reply=Reply({"build": {"id": "b2", "status": "Failed"}})
    )
    config = make_config(base_url, detect_immediate_status=False)

    async with aiohttp.ClientSession() as session:
        result = await trigger_build(Transport(session), config, "main", "abc")

    assert result.immediate_status is None


@pytest.mark.asyncio
async def test_trigger_without_build_id_fails(start_server, make_config):
    server, base_url = await start_server(trigger_reply=Reply({"message": "accepted"}))

    async with aiohttp.ClientSession() as session:
        with pytest.raises(NoBuildIdentifier) as excinfo:
            await trigger_build(Transport(session), make_config(base_url), "main", "abc")

    assert excinfo.value.raw == {"message": "accepted"}


@pytest.mark.asyncio
async def test_trigger_http_error_is_fatal(start_server, make_config):
    server, base_url = await start_server(
        trigger_reply=Reply({"error": "project not found"}, status=404)
    )

    async with aiohttp.ClientSession() as session:
        with pytest.raises(TriggerRequestError) as excinfo:
            await trigger_build(Transport(session), make_config(base_url), "main", "abc")

    assert isinstance(excinfo.value.outcome, HttpError)
    assert excinfo.value.outcome.status_code == 404
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_trigger_upload_sends_archive(start_server, make_config, tmp_path):
    """Upload mode POSTs the archive bytes to the environment upload endpoint."""
    artifact = tmp_path / "site.zip"
    artifact.write_bytes(b"PK\x03\x04fake-archive")
    server, base_url = await start_server(trigger_reply=Reply({"buildId": "up-1"}))
    config = make_config(
        base_url, mode=BuildMode.upload, environment_id="env-7", artifact_path=str(artifact)
    )

    async with aiohttp.ClientSession() as session:
        result = await trigger_upload(Transport(session), config, "env-7", str(artifact))

    assert result.build_id == "up-1"
    request = server.requests[0]
    assert request["path"] == "/projects/proj-1/environments/env-7/builds/upload"
    assert request["headers"]["Content-Type"] == "application/zip"
    assert request["headers"]["Content-Length"] == str(len(b"PK\x03\x04fake-archive"))
    assert request["body"] == b"PK\x03\x04fake-archive"


@pytest.mark.asyncio
async def test_trigger_upload_missing_artifact(start_server, make_config, tmp_path):
    server, base_url = await start_server()
    missing = str(tmp_path / "missing.zip")
    config = make_config(base_url, mode=BuildMode.upload, environment_id="env-7", artifact_path=missing)

    async with aiohttp.ClientSession() as session:
        with pytest.raises(ArtifactNotFound):
            await trigger_upload(Transport(session), config, "env-7", missing)

    assert server.requests == []


@pytest.mark.asyncio
async def test_trigger_upload_rejected_when_unsupported(make_config, tmp_path):
    artifact = tmp_path / "site.zip"
    artifact.write_bytes(b"zip")
    config = make_config(
        "http://localhost:1",
        mode=BuildMode.upload,
        environment_id="env-7",
        artifact_path=str(artifact),
        vocabulary=StatusVocabulary(supports_upload=False),
    )

    async with aiohttp.ClientSession() as session:
        with pytest.raises(ConfigurationError):
            await trigger_upload(Transport(session), config, "env-7", str(artifact))
