"""Exception hierarchy for the regeneration protocol.

Hook-level failures are isolated and recorded per hook; only staging-area and
request-level faults abort a whole cycle.
"""
from typing import Optional


class RegenError(Exception):
    """Base class for every regenconf error."""
    pass


class HookExecutionError(RegenError):
    """A hook's pre_regen or post_regen raised or exited non-zero."""

    def __init__(self, hook_id: str, phase: str, message: str):
        self.hook_id = hook_id
        self.phase = phase
        super().__init__(f"{hook_id}.{phase}_regen failed: {message}")


class StagingAreaError(RegenError):
    """The staging area cannot be created or used."""
    pass


class StagingPathError(StagingAreaError):
    """A write targeted a path outside the hook's staging subtree."""
    pass


class ApplyFileError(RegenError):
    """A single staged file could not be applied to the live filesystem."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Failed to apply {path}: {message}")


class LiveReadError(RegenError):
    """A live file could not be read while comparing it with its candidate."""

    def __init__(self, path: str, hook_id: str, message: str):
        self.path = path
        self.hook_id = hook_id
        super().__init__(f"Cannot read live {path} for {hook_id}: {message}")


class ResourceTimeoutError(RegenError, TimeoutError):
    """An exclusive resource stayed unavailable after every attempt."""

    def __init__(self, resource_id: str, attempts: int):
        self.resource_id = resource_id
        self.attempts = attempts
        super().__init__(f"Timed out waiting for {resource_id} after {attempts} attempt(s)")


class CorruptedResourceError(RegenError):
    """The resource shows an interrupted prior writer; retrying cannot help."""

    def __init__(self, resource_id: str, detail: Optional[str] = None):
        self.resource_id = resource_id
        message = f"{resource_id} was left in an inconsistent state by an interrupted writer"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class UnknownPhaseError(RegenError):
    """A hook was invoked with a phase other than pre or post."""

    def __init__(self, phase: str):
        self.phase = phase
        super().__init__(f"Unknown phase '{phase}' (expected 'pre' or 'post')")


class UnknownHookError(RegenError):
    """A requested hook id is not registered."""

    def __init__(self, hook_ids):
        self.hook_ids = list(hook_ids)
        super().__init__(f"Unknown hook(s): {', '.join(self.hook_ids)}")


class OwnershipConflictError(RegenError):
    """A live path was claimed by a hook that does not own it."""

    def __init__(self, path: str, hook_id: str, owner: str):
        self.path = path
        self.hook_id = hook_id
        self.owner = owner
        super().__init__(f"{hook_id} staged {path}, which is owned by {owner}")


class RegistryError(RegenError):
    """Hook registrations are invalid or overlap."""
    pass


class ConfigValidationError(RegenError):
    """The host configuration file is invalid."""
    pass
