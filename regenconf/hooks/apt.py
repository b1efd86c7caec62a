"""APT preferences hook.

Stages an apt.conf snippet on every run and a pinning file while packages are
pinned out. When the pin list becomes empty the pinning file is no longer
staged, and the ownership manifest turns that into a removal.
"""
import time
from typing import Callable, List, Optional

from regenconf.core.hooks import Hook, HookContext
from regenconf.core.logger import get_logger
from regenconf.core.resource_guard import BackoffFn, ExclusiveResource, acquire, quadratic_backoff
from regenconf.core.templates import TemplateRenderer
from regenconf.hooks.files import enforce_permissions
from regenconf.services.dpkg import DpkgLock
from regenconf.services.systemd import ServiceManager

logger = get_logger(__name__)

APT_CONF = "/etc/apt/apt.conf.d/99-regenconf"
PINNING_FILE = "/etc/apt/preferences.d/regenconf-pinning"


class AptHook(Hook):
    """Generate APT configuration and refresh the package cache on change."""

    hook_id = "apt"
    owns = (APT_CONF, PINNING_FILE)

    def __init__(
        self,
        services: Optional[ServiceManager] = None,
        renderer: Optional[TemplateRenderer] = None,
        package_lock: Optional[ExclusiveResource] = None,
        max_attempts: int = 10,
        backoff_fn: BackoffFn = quadratic_backoff,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.services = services
        self.renderer = renderer or TemplateRenderer()
        self.package_lock = package_lock
        self.max_attempts = max_attempts
        self.backoff_fn = backoff_fn
        self.sleep = sleep

    def pre_regen(self, staging, context: HookContext) -> None:
        if context.host.has_marker(self.hook_id) and not context.force:
            logger.info("apt: escape-hatch marker present, skipping generation")
            return

        host = context.host
        staging.write(APT_CONF, self.renderer.render(
            "apt/apt.conf.j2",
            install_recommends=bool(host.setting(self.hook_id, "install_recommends", False)),
            retries=int(host.setting(self.hook_id, "retries", 3)),
        ))

        pin_out = sorted(set(host.setting(self.hook_id, "pin_out", ()) or ()))
        if pin_out:
            staging.write(PINNING_FILE, self.renderer.render("apt/preferences.j2", pin_out=pin_out))

    def post_regen(self, changed_files: List[str], context: HookContext) -> None:
        if not changed_files:
            return

        for path in changed_files:
            live = context.live_path(path)
            if live.exists():
                enforce_permissions(live, "root", "root", 0o644, mock=context.mock)

        package_lock = self.package_lock or DpkgLock(context.live_path("/var/lib/dpkg"))
        services = self.services or ServiceManager(mock=context.mock)

        # DpkgLock only tests availability; apt-get takes the real lock itself
        with acquire(package_lock, self.max_attempts, self.backoff_fn, self.sleep):
            services.run_command(["apt-get", "update", "-qq"])
