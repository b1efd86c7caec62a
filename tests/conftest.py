"""Shared test fixtures for regenconf tests."""
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from regenconf.core.config import set_config
from regenconf.core.hooks import Hook, HookContext, HookRegistration, HookRegistry, HostSnapshot
from regenconf.core.manifest import OwnershipManifest
from regenconf.core.orchestrator import RegenOrchestrator


class StaticHook(Hook):
    """Stages fixed content and records every call."""

    def __init__(self, files: Optional[Dict[str, str]] = None,
                 fail_pre: Optional[Exception] = None,
                 fail_post: Optional[Exception] = None,
                 calls: Optional[List[str]] = None,
                 name: str = ""):
        self.files = dict(files or {})
        self.fail_pre = fail_pre
        self.fail_post = fail_post
        self.pre_calls = 0
        self.post_calls: List[List[str]] = []
        self.calls = calls if calls is not None else []
        self.name = name

    def pre_regen(self, staging, context: HookContext) -> None:
        self.pre_calls += 1
        self.calls.append(f"{self.name}.pre")
        for path, content in self.files.items():
            staging.write(path, content)
        if self.fail_pre:
            raise self.fail_pre

    def post_regen(self, changed_files: List[str], context: HookContext) -> None:
        self.calls.append(f"{self.name}.post")
        self.post_calls.append(list(changed_files))
        if self.fail_post:
            raise self.fail_post


class FakeResource:
    """ExclusiveResource stand-in: busy for the first N attempts."""

    resource_id = "fake"

    def __init__(self, busy_attempts: int = 0, corrupted: Optional[str] = None):
        self.busy_attempts = busy_attempts
        self.corrupted = corrupted
        self.attempts = 0
        self.released = 0

    def try_acquire(self) -> bool:
        self.attempts += 1
        return self.attempts > self.busy_attempts

    def release(self) -> None:
        self.released += 1

    def corruption(self):
        return self.corrupted


@pytest.fixture(autouse=True)
def reset_global_config():
    """Each test reads REGENCONF_* afresh."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def live_root(tmp_path) -> Path:
    root = tmp_path / "live"
    root.mkdir()
    return root


@pytest.fixture
def manifest(tmp_path) -> OwnershipManifest:
    return OwnershipManifest(tmp_path / "state" / "ownership.json")


@pytest.fixture
def make_orchestrator(tmp_path, live_root, manifest):
    """Build an orchestrator over (hook_id, hook) pairs in registration order."""

    def _make(*hooks, host: Optional[HostSnapshot] = None, staging_parent=None, mock=True):
        registry = HookRegistry(
            HookRegistration(hook_id, hook) for hook_id, hook in hooks
        )
        return RegenOrchestrator(
            registry=registry,
            manifest=manifest,
            live_root=live_root,
            host=host,
            staging_parent=str(staging_parent or tmp_path / "staging"),
            mock=mock,
        )

    return _make


def write_live(live_root: Path, path: str, content: str) -> Path:
    target = live_root / path.lstrip("/")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    return target
