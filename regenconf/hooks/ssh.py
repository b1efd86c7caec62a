"""OpenSSH server configuration hook."""
from typing import List, Optional

from regenconf.core.hooks import Hook, HookContext
from regenconf.core.logger import get_logger
from regenconf.core.templates import TemplateRenderer
from regenconf.hooks.files import enforce_permissions
from regenconf.services.systemd import ServiceManager

logger = get_logger(__name__)

SSHD_CONFIG = "/etc/ssh/sshd_config"
HOST_KEY_TYPES = ("ed25519", "ecdsa", "rsa")
DSA_HOST_KEY = "/etc/ssh/ssh_host_dsa_key"


class SshHook(Hook):
    """Generate /etc/ssh/sshd_config and reload sshd when it changes.

    Settings (``settings.ssh`` in the host config):
        port: listening port (default 22)
        password_authentication: allow password logins (default true)
        permit_root_login: PermitRootLogin value (default "prohibit-password")
        compatibility: "intermediate" or "modern" crypto (default "intermediate")
        allow_deprecated_dsa_key: keep the legacy DSA host key (default false)
    """

    hook_id = "ssh"
    owns = (SSHD_CONFIG,)
    unit = "ssh"

    def __init__(self, services: Optional[ServiceManager] = None,
                 renderer: Optional[TemplateRenderer] = None):
        self.services = services
        self.renderer = renderer or TemplateRenderer()

    def _host_keys(self, context: HookContext, allow_dsa: bool) -> List[str]:
        keys = [
            f"/etc/ssh/ssh_host_{key_type}_key"
            for key_type in HOST_KEY_TYPES
            if context.live_path(f"/etc/ssh/ssh_host_{key_type}_key").exists()
        ]
        if not keys:
            keys = ["/etc/ssh/ssh_host_ed25519_key", "/etc/ssh/ssh_host_rsa_key"]
        if allow_dsa and context.live_path(DSA_HOST_KEY).exists():
            keys.append(DSA_HOST_KEY)
        return keys

    def pre_regen(self, staging, context: HookContext) -> None:
        if context.host.has_marker(self.hook_id) and not context.force:
            logger.info("ssh: escape-hatch marker present, leaving sshd_config alone")
            return

        host = context.host
        allow_dsa = bool(host.setting(self.hook_id, "allow_deprecated_dsa_key", False))
        listen_addresses = ["::", "0.0.0.0"] if host.ipv6_available else ["0.0.0.0"]

        content = self.renderer.render(
            "ssh/sshd_config.j2",
            port=int(host.setting(self.hook_id, "port", 22)),
            listen_addresses=listen_addresses,
            host_keys=self._host_keys(context, allow_dsa),
            allow_dsa=allow_dsa,
            compatibility=host.setting(self.hook_id, "compatibility", "intermediate"),
            permit_root_login=host.setting(self.hook_id, "permit_root_login", "prohibit-password"),
            password_authentication=bool(host.setting(self.hook_id, "password_authentication", True)),
        )
        staging.write(SSHD_CONFIG, content)

    def post_regen(self, changed_files: List[str], context: HookContext) -> None:
        if not changed_files:
            return

        for path in changed_files:
            live = context.live_path(path)
            if live.exists():
                enforce_permissions(live, "root", "root", 0o644, mock=context.mock)

        services = self.services or ServiceManager(mock=context.mock)
        if SSHD_CONFIG in changed_files:
            services.run_command(["sshd", "-t", "-f", str(context.live_path(SSHD_CONFIG))])
        services.reload_or_restart(self.unit)
