"""Tests for the regeneration cycle state machine."""
import os

import pytest

from regenconf.core.errors import (
    HookExecutionError,
    ResourceTimeoutError,
    StagingAreaError,
    StagingPathError,
    UnknownHookError,
)
from regenconf.core.hooks import HookRegistration, HookRegistry
from regenconf.core import diff_engine
from regenconf.core.diff_engine import ChangeStatus
from regenconf.core.orchestrator import (
    CycleState,
    OutcomeStatus,
    RegenOrchestrator,
    RegenRequest,
)
from regenconf.hooks.apt import APT_CONF, AptHook
from regenconf.services.systemd import ServiceManager

from conftest import FakeResource, StaticHook, write_live


@pytest.fixture
def chown_calls(monkeypatch):
    calls = []
    monkeypatch.setattr(os, "chown", lambda path, uid, gid: calls.append((str(path), uid, gid)))
    return calls


class TestCycle:
    """Happy path, idempotence and short-circuits."""

    def test_first_run_applies_and_posts(self, make_orchestrator, live_root, manifest):
        hook = StaticHook({"/etc/app/app.conf": "a=1\n"})

        report = make_orchestrator(("app", hook)).run(RegenRequest())

        assert report.state == CycleState.DONE
        assert report.ok
        assert (live_root / "etc/app/app.conf").read_text() == "a=1\n"
        assert hook.post_calls == [["/etc/app/app.conf"]]
        assert report.outcomes["app"].status == OutcomeStatus.SUCCESS
        assert manifest.owned_paths("app") == ["/etc/app/app.conf"]
        assert report.manifest_saved is True

    def test_second_run_is_a_noop(self, make_orchestrator):
        hook = StaticHook({"/etc/app/app.conf": "a=1\n"})
        orchestrator = make_orchestrator(("app", hook))
        orchestrator.run(RegenRequest())

        report = orchestrator.run(RegenRequest())

        assert report.state == CycleState.DONE
        assert report.changed_records() == []
        assert [r.status for r in report.records] == [ChangeStatus.UNCHANGED]
        assert hook.post_calls == [["/etc/app/app.conf"]]
        assert report.outcomes["app"].status == OutcomeStatus.NOOP

    def test_staging_removed_after_cycle(self, make_orchestrator, tmp_path):
        make_orchestrator(("app", StaticHook({"/etc/a": "a"}))).run(RegenRequest())

        assert list((tmp_path / "staging").iterdir()) == []

    def test_force_without_changes_calls_post_with_empty_list(self, make_orchestrator, live_root):
        write_live(live_root, "/etc/a", "a")
        hook = StaticHook({"/etc/a": "a"})

        report = make_orchestrator(("app", hook)).run(RegenRequest(force=True))

        assert report.state == CycleState.DONE
        assert hook.post_calls == [[]]
        assert report.outcomes["app"].post_called

    def test_hook_with_no_output_is_noop(self, make_orchestrator):
        hook = StaticHook()

        report = make_orchestrator(("quiet", hook)).run(RegenRequest())

        assert report.ok
        assert hook.pre_calls == 1
        assert hook.post_calls == []
        assert report.outcomes["quiet"].status == OutcomeStatus.NOOP


class TestDryRun:
    """Dry runs report without mutating anything."""

    def test_dry_run_changes_nothing(self, make_orchestrator, live_root, manifest):
        write_live(live_root, "/etc/a", "old\n")
        hook = StaticHook({"/etc/a": "new\n", "/etc/b": "b\n"})

        report = make_orchestrator(("app", hook)).run(RegenRequest(dry_run=True))

        assert report.state == CycleState.DONE
        assert (live_root / "etc/a").read_text() == "old\n"
        assert not (live_root / "etc/b").exists()
        assert not manifest.manifest_file.exists()
        assert hook.post_calls == []
        assert [(r.path, r.status) for r in report.changed_records()] == [
            ("/etc/a", ChangeStatus.MODIFIED),
            ("/etc/b", ChangeStatus.ADDED),
        ]
        assert report.outcomes["app"].status == OutcomeStatus.PENDING

    def test_dry_run_with_force_still_skips_post(self, make_orchestrator, live_root):
        hook = StaticHook({"/etc/a": "a"})

        report = make_orchestrator(("app", hook)).run(RegenRequest(force=True, dry_run=True))

        assert report.state == CycleState.DONE
        assert hook.post_calls == []
        assert not (live_root / "etc/a").exists()

    def test_with_diff_collects_unified_diffs(self, make_orchestrator, live_root):
        write_live(live_root, "/etc/a", "old\n")
        hook = StaticHook({"/etc/a": "new\n"})

        report = make_orchestrator(("app", hook)).run(RegenRequest(dry_run=True, with_diff=True))

        text = report.diffs["/etc/a"]
        assert "--- live/etc/a" in text
        assert "+++ staged/etc/a" in text
        assert "-old" in text
        assert "+new" in text


class TestIsolation:
    """Hook failures stay with the hook that caused them."""

    def test_failing_pre_is_isolated(self, make_orchestrator, live_root):
        calls = []
        broken = StaticHook({"/etc/broken.conf": "half"}, fail_pre=RuntimeError("boom"),
                            calls=calls, name="broken")
        healthy = StaticHook({"/etc/healthy.conf": "ok"}, calls=calls, name="healthy")

        report = make_orchestrator(("broken", broken), ("healthy", healthy)).run(RegenRequest())

        assert report.state == CycleState.DONE
        assert not report.ok
        assert not (live_root / "etc/broken.conf").exists()
        assert (live_root / "etc/healthy.conf").read_text() == "ok"
        assert calls == ["broken.pre", "healthy.pre", "healthy.post"]

        outcome = report.outcomes["broken"]
        assert outcome.status == OutcomeStatus.FAILED
        assert isinstance(outcome.pre_error, HookExecutionError)
        assert isinstance(outcome.pre_error.__cause__, RuntimeError)
        assert "broken.pre_regen failed: boom" in str(outcome.pre_error)
        assert report.failed_hooks() == ["broken"]

    def test_failing_post_keeps_files_applied(self, make_orchestrator, live_root):
        calls = []
        first = StaticHook({"/etc/first": "1"}, fail_post=RuntimeError("reload failed"),
                           calls=calls, name="first")
        second = StaticHook({"/etc/second": "2"}, calls=calls, name="second")

        report = make_orchestrator(("first", first), ("second", second)).run(RegenRequest())

        assert (live_root / "etc/first").read_text() == "1"
        assert calls[-2:] == ["first.post", "second.post"]
        assert report.outcomes["first"].post_error is not None
        assert report.outcomes["second"].status == OutcomeStatus.SUCCESS

    def test_symlink_in_staging_fails_the_hook(self, make_orchestrator, live_root):
        class SymlinkHook(StaticHook):
            def pre_regen(self, staging, context):
                staging.path_for("/etc/link").parent.mkdir(parents=True, exist_ok=True)
                os.symlink("/etc/shadow", staging.path_for("/etc/link"))

        report = make_orchestrator(("sneaky", SymlinkHook())).run(RegenRequest())

        outcome = report.outcomes["sneaky"]
        assert isinstance(outcome.pre_error.__cause__, StagingPathError)
        assert not os.path.lexists(live_root / "etc/link")

    def test_staging_escape_fails_the_hook(self, make_orchestrator, live_root):
        escaping = StaticHook({"/../../../outside.conf": "x"})
        healthy = StaticHook({"/etc/ok": "ok"})

        report = make_orchestrator(("escaping", escaping), ("healthy", healthy)).run(RegenRequest())

        assert isinstance(report.outcomes["escaping"].pre_error.__cause__, StagingPathError)
        assert (live_root / "etc/ok").exists()

    def test_apply_error_is_per_file(self, make_orchestrator, live_root, manifest):
        (live_root / "etc/blocked").mkdir(parents=True)
        hook = StaticHook({"/etc/blocked": "x", "/etc/fine": "y"})

        report = make_orchestrator(("app", hook)).run(RegenRequest())

        assert [e.path for e in report.apply_errors] == ["/etc/blocked"]
        assert (live_root / "etc/fine").read_text() == "y"
        assert hook.post_calls == [["/etc/fine"]]
        assert report.outcomes["app"].status == OutcomeStatus.FAILED
        assert not report.ok
        assert manifest.owned_paths("app") == ["/etc/fine"]

    def test_unreadable_live_file_fails_only_its_hook(self, make_orchestrator, live_root, monkeypatch):
        write_live(live_root, "/etc/secret.conf", "old")
        real_same_content = diff_engine.same_content

        def guarded(staged, live):
            if live.name == "secret.conf":
                raise PermissionError(13, "Permission denied", str(live))
            return real_same_content(staged, live)

        monkeypatch.setattr(diff_engine, "same_content", guarded)
        locked = StaticHook({"/etc/secret.conf": "new"})
        healthy = StaticHook({"/etc/ok": "ok"})

        report = make_orchestrator(("locked", locked), ("healthy", healthy)).run(RegenRequest())

        assert report.state == CycleState.DONE
        assert (live_root / "etc/secret.conf").read_text() == "old"
        assert (live_root / "etc/ok").read_text() == "ok"
        assert [e.path for e in report.outcomes["locked"].read_errors] == ["/etc/secret.conf"]
        assert report.outcomes["locked"].status == OutcomeStatus.FAILED
        assert locked.post_calls == []
        assert healthy.post_calls == [["/etc/ok"]]
        assert not report.ok


class TestFailedCycle:
    """Orchestrator-level faults end in FAILED."""

    def test_unknown_target(self, make_orchestrator):
        hook = StaticHook({"/etc/a": "a"})

        report = make_orchestrator(("app", hook)).run(RegenRequest(targets=["app", "nope"]))

        assert report.state == CycleState.FAILED
        assert isinstance(report.error, UnknownHookError)
        assert hook.pre_calls == 0
        assert not report.ok

    def test_staging_unavailable(self, make_orchestrator, tmp_path, live_root):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        hook = StaticHook({"/etc/a": "a"})

        report = make_orchestrator(("app", hook), staging_parent=blocker / "sub").run(RegenRequest())

        assert report.state == CycleState.FAILED
        assert isinstance(report.error, StagingAreaError)
        assert hook.pre_calls == 0
        assert not (live_root / "etc/a").exists()


class TestTargets:
    """Target selection honours registration order."""

    def test_subset_runs_in_registration_order(self, make_orchestrator):
        calls = []
        hooks = [(name, StaticHook({f"/etc/{name}": name}, calls=calls, name=name))
                 for name in ("a", "b", "c")]

        report = make_orchestrator(*hooks).run(RegenRequest(targets=["c", "a"]))

        assert list(report.outcomes) == ["a", "c"]
        assert calls == ["a.pre", "c.pre", "a.post", "c.post"]


class TestOwnership:
    """Removal across cycles and exclusive ownership."""

    def test_dropped_file_is_removed(self, make_orchestrator, live_root, manifest):
        hook = StaticHook({"/etc/keep": "k", "/etc/drop": "d"})
        orchestrator = make_orchestrator(("app", hook))
        orchestrator.run(RegenRequest())

        hook.files = {"/etc/keep": "k"}
        report = orchestrator.run(RegenRequest())

        assert not (live_root / "etc/drop").exists()
        assert (live_root / "etc/keep").exists()
        assert hook.post_calls[-1] == ["/etc/drop"]
        assert manifest.owned_paths("app") == ["/etc/keep"]
        assert [(r.path, r.status) for r in report.changed_records()] == [
            ("/etc/drop", ChangeStatus.REMOVED)
        ]

    def test_escape_hatch_keeps_files_and_ownership(self, make_orchestrator, live_root, manifest):
        hook = StaticHook({"/etc/app.conf": "generated"})
        orchestrator = make_orchestrator(("app", hook))
        orchestrator.run(RegenRequest())
        write_live(live_root, "/etc/app.conf", "hand edited")

        hook.files = {}
        report = orchestrator.run(RegenRequest())

        assert (live_root / "etc/app.conf").read_text() == "hand edited"
        assert report.changed_records() == []
        assert manifest.owned_paths("app") == ["/etc/app.conf"]

    def test_same_path_from_two_hooks_is_rejected(self, make_orchestrator, live_root):
        first = StaticHook({"/etc/shared": "1"})
        second = StaticHook({"/etc/shared": "2"})

        report = make_orchestrator(("first", first), ("second", second)).run(RegenRequest())

        assert not (live_root / "etc/shared").exists()
        assert report.outcomes["first"].status == OutcomeStatus.FAILED
        assert report.outcomes["second"].status == OutcomeStatus.FAILED
        assert first.post_calls == []

    def test_declared_path_cannot_be_taken(self, tmp_path, live_root, manifest):
        owner = StaticHook()
        intruder = StaticHook({"/etc/ssh/sshd_config": "Port 1\n"})
        registry = HookRegistry([
            HookRegistration("ssh", owner, owns=("/etc/ssh/sshd_config",)),
            HookRegistration("intruder", intruder),
        ])
        orchestrator = RegenOrchestrator(registry, manifest, live_root=live_root,
                                         staging_parent=str(tmp_path / "staging"), mock=True)

        report = orchestrator.run(RegenRequest())

        assert not (live_root / "etc/ssh/sshd_config").exists()
        assert report.outcomes["intruder"].conflicts[0].owner == "ssh"
        assert manifest.owned_paths("intruder") == []

    def test_unchanged_file_is_not_claimed(self, make_orchestrator, live_root, manifest):
        write_live(live_root, "/etc/app/a.conf", "same")
        app = StaticHook({"/etc/app/a.conf": "same"})
        other = StaticHook({"/etc/other": "o"})
        orchestrator = make_orchestrator(("app", app), ("other", other))
        orchestrator.run(RegenRequest())

        assert manifest.owned_paths("app") == []
        assert manifest.owned_paths("other") == ["/etc/other"]

        app.files = {"/etc/app/b.conf": "b"}
        report = orchestrator.run(RegenRequest())

        assert (live_root / "etc/app/a.conf").read_text() == "same"
        assert [(r.path, r.status) for r in report.changed_records()] == [
            ("/etc/app/b.conf", ChangeStatus.ADDED)
        ]
        assert manifest.owned_paths("app") == ["/etc/app/b.conf"]
        assert manifest.owned_paths("other") == ["/etc/other"]

    def test_failed_write_is_not_owned(self, make_orchestrator, live_root, manifest):
        (live_root / "etc/blocked").mkdir(parents=True)
        hook = StaticHook({"/etc/blocked": "x"})
        orchestrator = make_orchestrator(("app", hook))
        orchestrator.run(RegenRequest())

        assert manifest.owned_paths("app") == []

        hook.files = {"/etc/other": "o"}
        report = orchestrator.run(RegenRequest())

        assert (live_root / "etc/blocked").is_dir()
        assert [(r.path, r.status) for r in report.changed_records()] == [
            ("/etc/other", ChangeStatus.ADDED)
        ]
        assert report.ok


class TestResourceGuard:
    """A hook timing out on a busy resource fails alone."""

    def test_busy_package_lock_times_out(self, make_orchestrator, live_root, chown_calls):
        lock = FakeResource(busy_attempts=100)
        sleeps = []
        services = ServiceManager(mock=True)
        apt = AptHook(services=services, package_lock=lock, max_attempts=3, sleep=sleeps.append)
        other = StaticHook({"/etc/other": "o"})

        report = make_orchestrator(("apt", apt), ("other", other)).run(RegenRequest())

        outcome = report.outcomes["apt"]
        assert isinstance(outcome.post_error.__cause__, ResourceTimeoutError)
        assert lock.attempts == 3
        assert sleeps == [1.0, 4.0]
        assert services.history == []
        assert (live_root / APT_CONF.lstrip("/")).exists()
        assert other.post_calls == [["/etc/other"]]
