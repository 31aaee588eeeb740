"""GitHub Action entry point.

Reads the action inputs and runner metadata from the environment, runs the
build client and publishes the result as step outputs.
"""

import asyncio
import os
import sys
import uuid
from typing import Mapping, Optional

from loguru import logger
from pydantic import ValidationError

from embr_build_client.build_client import EmbrBuildClient
from embr_build_client.errors import ConfigurationError, EmbrActionError
from embr_build_client.models import BuildConfig, BuildResult, Outcome, RepositoryContext
from embr_build_client.reporter import result_outputs
from embr_build_client.repository_context import repository_context_from_env

DEFAULT_API_BASE_URL = "https://embr-poc.azurewebsites.net/api"
BANNER = "=" * 50

_WORKFLOW_COMMANDS = {
    "TRACE": "::debug::",
    "DEBUG": "::debug::",
    "WARNING": "::warning::",
    "ERROR": "::error::",
    "CRITICAL": "::error::",
}


def get_input(env: Mapping[str, str], name: str, default: str = "") -> str:
    value = env.get(f"INPUT_{name.replace(' ', '_').upper()}", "").strip()
    return value or default


def escape_command_data(text: str) -> str:
    """Escape a workflow command message so multi-line text stays one annotation"""
    return text.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _github_sink(message) -> None:
    record = message.record
    prefix = _WORKFLOW_COMMANDS.get(record["level"].name, "")
    text = record["message"]
    if prefix:
        text = escape_command_data(text)
    sys.stdout.write(f"{prefix}{text}\n")
    sys.stdout.flush()


def configure_logging(env: Mapping[str, str]) -> None:
    """Route loguru records to GitHub workflow commands"""
    level = "DEBUG" if env.get("RUNNER_DEBUG") == "1" else "INFO"
    logger.remove()
    logger.add(_github_sink, level=level)


def load_config(env: Mapping[str, str]) -> BuildConfig:
    project_id = get_input(env, "project-id")
    if not project_id:
        raise ConfigurationError("Input required and not supplied: project-id")

    try:
        return BuildConfig(
            endpoint_base=get_input(env, "api-base-url", DEFAULT_API_BASE_URL),
            project_id=project_id,
            poll_interval_seconds=get_input(env, "poll-interval", "10"),
            max_attempts=get_input(env, "max-attempts", "60"),
            request_timeout_ms=get_input(env, "request-timeout-ms", "30000"),
            mode=get_input(env, "mode", "build"),
            environment_id=get_input(env, "environment-id") or None,
            artifact_path=get_input(env, "artifact-path") or None,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid action inputs: {e}") from e


def log_context(config: BuildConfig, context: RepositoryContext) -> None:
    logger.info(BANNER)
    logger.info("Embr Action Started")
    logger.info(BANNER)
    logger.info(f"Repository: {context.full_repository}")
    logger.info(f"Ref: {context.ref} ({context.ref_kind.value})")
    if context.branch_or_tag:
        logger.info(f"Branch/tag: {context.branch_or_tag}")
    logger.info(f"Commit: {context.commit_sha}")
    logger.info(f"Actor: {context.actor}")
    logger.info(f"Event: {context.event_name}")
    logger.info(f"Run ID: {context.run_id}")
    logger.info(f"Project ID: {config.project_id}")
    logger.info(f"Mode: {config.mode.value}")


def write_outputs(result: BuildResult, output_path: Optional[str]) -> None:
    """Append step outputs to the GITHUB_OUTPUT file, or print them when it is not set"""
    outputs = result_outputs(result)
    if not output_path:
        for name, value in outputs.items():
            print(f"{name}={value}")
        return

    with open(output_path, "a", encoding="utf-8") as fh:
        for name, value in outputs.items():
            delimiter = f"ghadelimiter_{uuid.uuid4()}"
            fh.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")


def run_action(env: Mapping[str, str]) -> int:
    """Run the action against ``env`` and return the process exit code"""
    try:
        config = load_config(env)
        context = repository_context_from_env(env)
        log_context(config, context)
        result = asyncio.run(EmbrBuildClient(config).run(context))
    except EmbrActionError as e:
        logger.error(f"Action failed: {e}")
        return 1

    write_outputs(result, env.get("GITHUB_OUTPUT"))
    logger.info(BANNER)
    logger.info(f"Build {result.build_id}: {result.outcome.value}")
    if result.derived.deployment_url:
        logger.info(f"Deployment URL: {result.derived.deployment_url}")
    logger.info(BANNER)

    fail_on_error = get_input(env, "fail-on-error", "true").lower() == "true"
    if result.outcome != Outcome.succeeded and fail_on_error:
        detail = f": {result.message}" if result.message else ""
        logger.error(f"Build {result.outcome.value}{detail}")
        return 1
    return 0


def main() -> None:
    configure_logging(os.environ)
    sys.exit(run_action(os.environ))


if __name__ == "__main__":
    main()
