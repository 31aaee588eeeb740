from typing import Any


class EmbrActionError(Exception):
    """Base class for failures that abort the action before a result exists."""


class ConfigurationError(EmbrActionError):
    pass


class ArtifactNotFound(EmbrActionError):
    def __init__(self, path: str):
        super().__init__(f"Artifact not found: {path}")
        self.path = path


class NoBuildIdentifier(EmbrActionError):
    def __init__(self, raw: Any):
        super().__init__("Trigger response did not contain a build id")
        self.raw = raw


class TriggerRequestError(EmbrActionError):
    """The trigger request failed at the HTTP or network level."""

    def __init__(self, outcome: Any):
        super().__init__(str(outcome))
        self.outcome = outcome
