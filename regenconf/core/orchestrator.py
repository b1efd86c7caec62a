"""Regeneration cycle orchestration across all registered hooks.

One cycle moves through PRE -> DECIDE -> APPLY -> POST -> DONE. Hook failures
are recorded per hook and never stop sibling hooks; only infrastructure faults
(staging area unavailable, unknown targets) end in FAILED.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from rich.console import Console

from regenconf.core.applicator import ApplyResult, ChangeApplicator
from regenconf.core.diff_engine import ChangeRecord, ChangeStatus, DiffEngine, DiffResult, unified_diff
from regenconf.core.errors import (
    ApplyFileError,
    HookExecutionError,
    LiveReadError,
    OwnershipConflictError,
    RegenError,
    StagingAreaError,
    UnknownHookError,
)
from regenconf.core.hooks import HookContext, HookRegistration, HookRegistry, HostSnapshot
from regenconf.core.logger import get_logger
from regenconf.core.manifest import OwnershipManifest
from regenconf.core.staging import StagingArea

logger = get_logger(__name__)


class CycleState(Enum):
    PRE = "pre"
    DECIDE = "decide"
    APPLY = "apply"
    POST = "post"
    DONE = "done"
    FAILED = "failed"


class OutcomeStatus(Enum):
    SUCCESS = "success"
    NOOP = "no-op"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class RegenRequest:
    """Input to one cycle. Empty targets means every registered hook."""
    targets: Tuple[str, ...] = ()
    force: bool = False
    dry_run: bool = False
    with_diff: bool = False

    def __post_init__(self):
        object.__setattr__(self, "targets", tuple(self.targets))


@dataclass
class HookOutcome:
    """What happened to one hook during a cycle."""
    hook_id: str
    changed_files: List[str] = field(default_factory=list)
    pre_error: Optional[HookExecutionError] = None
    post_error: Optional[HookExecutionError] = None
    conflicts: List[OwnershipConflictError] = field(default_factory=list)
    read_errors: List[LiveReadError] = field(default_factory=list)
    apply_errors: List[ApplyFileError] = field(default_factory=list)
    staged_files: List[str] = field(default_factory=list)
    pending: bool = False
    post_called: bool = False

    @property
    def errors(self) -> List[RegenError]:
        errors: List[RegenError] = []
        if self.pre_error:
            errors.append(self.pre_error)
        errors.extend(self.conflicts)
        errors.extend(self.read_errors)
        errors.extend(self.apply_errors)
        if self.post_error:
            errors.append(self.post_error)
        return errors

    @property
    def status(self) -> OutcomeStatus:
        if self.errors:
            return OutcomeStatus.FAILED
        if self.changed_files:
            return OutcomeStatus.PENDING if self.pending else OutcomeStatus.SUCCESS
        return OutcomeStatus.NOOP


@dataclass
class RegenReport:
    """Final report of a cycle; always lists every targeted hook."""
    request: RegenRequest
    state: CycleState = CycleState.PRE
    records: List[ChangeRecord] = field(default_factory=list)
    outcomes: Dict[str, HookOutcome] = field(default_factory=dict)
    apply_errors: List[ApplyFileError] = field(default_factory=list)
    diffs: Dict[str, str] = field(default_factory=dict)
    error: Optional[RegenError] = None
    manifest_saved: Optional[bool] = None

    def changed_records(self) -> List[ChangeRecord]:
        return [record for record in self.records if record.changed]

    def failed_hooks(self) -> List[str]:
        return [hook_id for hook_id, outcome in self.outcomes.items()
                if outcome.status == OutcomeStatus.FAILED]

    @property
    def ok(self) -> bool:
        return (
            self.state == CycleState.DONE
            and not self.failed_hooks()
            and not self.apply_errors
            and self.manifest_saved is not False
        )


class RegenOrchestrator:
    """Drive pre_regen, diff, apply and post_regen across hooks."""

    def __init__(
        self,
        registry: HookRegistry,
        manifest: OwnershipManifest,
        live_root: Path = Path("/"),
        host: Optional[HostSnapshot] = None,
        staging_parent: Optional[str] = None,
        mock: bool = False,
        console: Console = None,
    ):
        self.registry = registry
        self.manifest = manifest
        self.live_root = Path(live_root)
        self.host = host or HostSnapshot()
        self.staging_parent = staging_parent
        self.mock = mock
        self.console = console or Console()
        self.applicator = ChangeApplicator(self.live_root, console=self.console)

    def _enter(self, report: RegenReport, state: CycleState) -> None:
        logger.debug(f"Cycle state {report.state.value} -> {state.value}")
        report.state = state

    def _fail(self, report: RegenReport, error: RegenError) -> RegenReport:
        logger.error(f"Regeneration cycle failed: {error}")
        report.error = error
        self._enter(report, CycleState.FAILED)
        return report

    def run(self, request: RegenRequest) -> RegenReport:
        """Run one full regeneration cycle."""
        report = RegenReport(request=request)

        try:
            registrations = self.registry.resolve(request.targets)
        except UnknownHookError as e:
            return self._fail(report, e)

        context = HookContext(
            force=request.force,
            dry_run=request.dry_run,
            live_root=self.live_root,
            host=self.host,
            mock=self.mock,
        )
        report.outcomes = {r.hook_id: HookOutcome(r.hook_id) for r in registrations}
        logger.info(
            f"Regenerating configuration for {', '.join(report.outcomes) or 'no hooks'}"
            f"{' (dry run)' if request.dry_run else ''}{' (forced)' if request.force else ''}"
        )

        try:
            with StagingArea(parent=self.staging_parent) as staging:
                self._pre(registrations, staging, context, report)

                self._enter(report, CycleState.DECIDE)
                diff = self._decide(staging, report)

                if request.dry_run:
                    for outcome in report.outcomes.values():
                        outcome.pending = True
                    logger.info("Dry run: no live file modified")
                    self._enter(report, CycleState.DONE)
                    return report

                if not diff.has_changes() and not request.force:
                    logger.info("No changes detected; nothing to apply")
                    self._enter(report, CycleState.DONE)
                    return report

                self._enter(report, CycleState.APPLY)
                self._apply(diff, staging, report)
        except StagingAreaError as e:
            return self._fail(report, e)

        self._enter(report, CycleState.POST)
        self._post(registrations, context, report)

        self._enter(report, CycleState.DONE)
        return report

    def _pre(self, registrations: Sequence[HookRegistration], staging: StagingArea,
             context: HookContext, report: RegenReport) -> None:
        for registration in registrations:
            outcome = report.outcomes[registration.hook_id]
            view = staging.view(registration.hook_id)
            try:
                registration.hook.pre_regen(view, context)
                outcome.staged_files = view.files()
            except Exception as e:
                outcome.pre_error = HookExecutionError(registration.hook_id, "pre", str(e))
                outcome.pre_error.__cause__ = e
                logger.error(str(outcome.pre_error))
                staging.discard(registration.hook_id)
                continue

            if outcome.staged_files:
                logger.debug(f"{registration.hook_id} staged {len(outcome.staged_files)} file(s)")
            else:
                logger.info(f"{registration.hook_id} produced no candidate files")

    def _decide(self, staging: StagingArea, report: RegenReport) -> DiffResult:
        engine = DiffEngine(
            self.live_root,
            owned=self.manifest.as_mapping(),
            declared=self.registry.declared_owners,
        )
        diff = engine.compare_views(staging.views())
        report.records = diff.records

        for conflict in diff.conflicts:
            report.outcomes[conflict.hook_id].conflicts.append(conflict)
        for error in diff.read_errors:
            report.outcomes[error.hook_id].read_errors.append(error)
        for record in diff.changed():
            report.outcomes[record.hook_id].changed_files.append(record.path)

        if report.request.with_diff:
            views = {view.hook_id: view for view in staging.views()}
            for record in diff.changed():
                staged = None
                if record.status != ChangeStatus.REMOVED:
                    staged = views[record.hook_id].root / record.path.lstrip("/")
                try:
                    report.diffs[record.path] = unified_diff(
                        record.path, engine.live_path(record.path), staged
                    )
                except OSError as e:
                    logger.warning(f"No diff for {record.path}: {e}")
        return diff

    def _apply(self, diff: DiffResult, staging: StagingArea, report: RegenReport) -> None:
        result: ApplyResult = self.applicator.apply_changes(diff.records, staging.path)
        report.apply_errors = list(result.errors)

        owner_by_path = {record.path: record.hook_id for record in diff.records}
        for error in result.errors:
            report.outcomes[owner_by_path[error.path]].apply_errors.append(error)

        for outcome in report.outcomes.values():
            outcome.changed_files = []
        for record in result.applied:
            report.outcomes[record.hook_id].changed_files.append(record.path)

        self._update_manifest(diff, result, report)

    def _update_manifest(self, diff: DiffResult, result: ApplyResult, report: RegenReport) -> None:
        """Recompute ownership from each hook's own results.

        A hook keeps the previously owned paths it staged again, gains the
        paths written for it this cycle, and keeps removals that failed.
        Unchanged paths it never wrote stay unowned.
        """
        failed = set(result.failed_paths())

        for hook_id, outcome in report.outcomes.items():
            if outcome.pre_error or not outcome.staged_files:
                continue
            previous = set(self.manifest.owned_paths(hook_id))
            owned = previous & set(outcome.staged_files)
            for record in result.applied:
                if record.hook_id == hook_id and record.status != ChangeStatus.REMOVED:
                    owned.add(record.path)
            owned.update(
                record.path for record in diff.for_hook(hook_id)
                if record.status == ChangeStatus.REMOVED and record.path in failed
            )
            self.manifest.set_owned(hook_id, owned)

        report.manifest_saved = self.manifest.save()

    def _post(self, registrations: Sequence[HookRegistration], context: HookContext,
              report: RegenReport) -> None:
        for registration in registrations:
            outcome = report.outcomes[registration.hook_id]
            if outcome.pre_error:
                continue
            if not outcome.changed_files and not context.force:
                continue

            try:
                registration.hook.post_regen(list(outcome.changed_files), context)
                outcome.post_called = True
            except Exception as e:
                outcome.post_called = True
                outcome.post_error = HookExecutionError(registration.hook_id, "post", str(e))
                outcome.post_error.__cause__ = e
                logger.error(str(outcome.post_error))
