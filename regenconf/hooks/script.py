"""Adapter for external executable hooks.

The script is called with the same arguments ``regenconf hook`` accepts::

    <script> pre <force> <dry_run> <staging_path>
    <script> post <force> <dry_run> <changed_file>...
"""
import json
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from regenconf.core.errors import RegenError
from regenconf.core.hooks import Hook, HookContext
from regenconf.core.logger import get_logger

logger = get_logger(__name__)


class ScriptHookError(RegenError):
    """The external hook script exited non-zero."""
    pass


def format_flag(value: bool) -> str:
    return "1" if value else "0"


class ScriptHook(Hook):
    """Run a hook implemented as an executable outside this package."""

    def __init__(self, hook_id: str, script: Path, timeout: Optional[int] = None):
        self.hook_id = hook_id
        self.script = Path(script)
        self.timeout = timeout

    def _env(self, context: HookContext) -> Dict[str, str]:
        env = dict(os.environ)
        env["REGENCONF_LIVE_ROOT"] = str(context.live_root)
        env["REGENCONF_HOOK_SETTINGS"] = json.dumps(context.host.settings_for(self.hook_id))
        if context.mock:
            env["REGENCONF_MOCK"] = "1"
        return env

    def _run(self, phase: str, args: List[str], context: HookContext) -> None:
        cmd = [str(self.script), phase, format_flag(context.force), format_flag(context.dry_run)] + args
        logger.debug(f"Running {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                env=self._env(context),
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ScriptHookError(f"{self.script}: {e}") from e

        if result.stdout.strip():
            logger.debug(result.stdout.strip())
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            raise ScriptHookError(
                f"{self.script} {phase} exited with {result.returncode}: {detail}"
            )

    def pre_regen(self, staging, context: HookContext) -> None:
        self._run("pre", [str(staging.path)], context)

    def post_regen(self, changed_files: List[str], context: HookContext) -> None:
        if not changed_files and not context.force:
            return
        if context.mock:
            logger.info(f"MOCK: Would run {self.script} post for {len(changed_files)} file(s)")
            return
        self._run("post", list(changed_files), context)
