"""Sysctl strategy that matches names against allowed and forbidden patterns."""

from __future__ import annotations

from typing import Iterable, List, Optional

from scckit.api import Pod
from scckit.field import FieldError, Path, forbidden


def safe_sysctl_allowlist() -> List[str]:
    """Sysctls that are namespaced and isolated, so safe for any pod to set."""
    return [
        "kernel.shm_rmid_forced",
        "net.ipv4.ip_local_port_range",
        "net.ipv4.tcp_syncookies",
        "net.ipv4.ping_group_range",
        "net.ipv4.ip_unprivileged_port_start",
    ]


def _matches_pattern(name: str, patterns: Iterable[str]) -> bool:
    for pattern in patterns:
        if pattern.endswith("*"):
            if name.startswith(pattern[:-1]):
                return True
        elif name == pattern:
            return True
    return False


class MustMatchPatterns:
    """Allows safe sysctls and allowed unsafe ones, unless they are forbidden."""

    def __init__(
        self,
        safe_allowlist: Optional[Iterable[str]] = None,
        allowed_unsafe_sysctls: Optional[Iterable[str]] = None,
        forbidden_sysctls: Optional[Iterable[str]] = None,
    ) -> None:
        self.safe_allowlist = list(safe_allowlist or ())
        self.allowed_unsafe_sysctls = list(allowed_unsafe_sysctls or ())
        self.forbidden_sysctls = list(forbidden_sysctls or ())

    def _is_forbidden(self, name: str) -> bool:
        return _matches_pattern(name, self.forbidden_sysctls)

    def _is_safe(self, name: str) -> bool:
        return name in self.safe_allowlist

    def _is_allowed_unsafe(self, name: str) -> bool:
        return _matches_pattern(name, self.allowed_unsafe_sysctls)

    def validate(self, pod: Pod) -> List[FieldError]:
        """Return an error for each sysctl of the pod that is not allowed."""
        sc = pod.spec.security_context
        sysctls = sc.sysctls if sc is not None else []
        field_path = Path("pod", "spec", "securityContext").child("sysctls")

        errors = []
        for i, sysctl in enumerate(sysctls):
            if self._is_forbidden(sysctl.name):
                errors.append(forbidden(field_path.index(i), f'sysctl "{sysctl.name}" is not allowed'))
            elif self._is_safe(sysctl.name) or self._is_allowed_unsafe(sysctl.name):
                continue
            else:
                errors.append(
                    forbidden(field_path.index(i), f'unsafe sysctl "{sysctl.name}" is not allowed')
                )
        return errors