"""The provider interface and helpers that build strategies from constraints."""

from __future__ import annotations

import abc
from typing import Dict, Iterable, List, Optional, Tuple

from scckit.api import (
    DEPRECATED_SECCOMP_PROFILE_DOCKER_DEFAULT,
    SECCOMP_LOCALHOST_PROFILE_NAME_PREFIX,
    SECCOMP_PROFILE_NAME_UNCONFINED,
    SECCOMP_PROFILE_RUNTIME_DEFAULT,
    SELINUX_MUST_RUN_AS,
    SELINUX_RUN_AS_ANY,
    Container,
    Pod,
    PodSecurityContext,
    SeccompProfile,
    SeccompProfileType,
    SecurityContext,
    SecurityContextConstraints,
    SELinuxContextStrategyOptions,
)
from scckit.field import FieldError, Path
from scckit.seccomp import SeccompStrategy
from scckit.selinux import MustRunAs, RunAsAny, SELinuxStrategy
from scckit.sysctl import MustMatchPatterns


class SecurityContextConstraintsProvider(abc.ABC):
    """Generates security contexts from constraints and validates them against it."""

    @property
    @abc.abstractmethod
    def scc(self) -> SecurityContextConstraints:
        """The constraint the provider was created with."""

    @property
    def scc_name(self) -> str:
        return self.scc.name

    @property
    def scc_users(self) -> List[str]:
        return self.scc.users

    @property
    def scc_groups(self) -> List[str]:
        return self.scc.groups

    @abc.abstractmethod
    def create_pod_security_context(
        self, pod: Pod
    ) -> Tuple[Optional[PodSecurityContext], Optional[Dict[str, str]]]:
        """Return the pod security context and annotations the constraint calls for."""

    @abc.abstractmethod
    def create_container_security_context(
        self, pod: Pod, container: Container
    ) -> Optional[SecurityContext]:
        """Return the container security context the constraint calls for."""

    @abc.abstractmethod
    def validate_pod_security_context(self, pod: Pod, fld_path: Optional[Path]) -> List[FieldError]:
        """Check the pod's security context against the constraint."""

    @abc.abstractmethod
    def validate_container_security_context(
        self, pod: Pod, container: Container, fld_path: Optional[Path]
    ) -> List[FieldError]:
        """Check a container's security context against the constraint."""


def seccomp_field_for_annotation(annotation: str) -> Optional[SeccompProfile]:
    """Convert a seccomp annotation value to a profile field, or None if unrecognised."""
    if annotation == SECCOMP_PROFILE_NAME_UNCONFINED:
        return SeccompProfile(SeccompProfileType.UNCONFINED)
    if annotation in (SECCOMP_PROFILE_RUNTIME_DEFAULT, DEPRECATED_SECCOMP_PROFILE_DOCKER_DEFAULT):
        return SeccompProfile(SeccompProfileType.RUNTIME_DEFAULT)
    if annotation.startswith(SECCOMP_LOCALHOST_PROFILE_NAME_PREFIX):
        name = annotation[len(SECCOMP_LOCALHOST_PROFILE_NAME_PREFIX):]
        if name:
            return SeccompProfile(SeccompProfileType.LOCALHOST, localhost_profile=name)
    return None


def create_selinux_strategy(options: SELinuxContextStrategyOptions) -> SELinuxStrategy:
    """Build the SELinux strategy named by the options."""
    if options.type == SELINUX_MUST_RUN_AS:
        return MustRunAs(options)
    if options.type == SELINUX_RUN_AS_ANY:
        return RunAsAny(options)
    raise ValueError(f"Unrecognized SELinuxContext strategy type {options.type}")


def create_seccomp_strategy(allowed_profiles: Optional[Iterable[str]]) -> SeccompStrategy:
    """Build the seccomp strategy for the allowed profiles."""
    return SeccompStrategy(allowed_profiles)


def create_sysctls_strategy(
    safe_allowlist: Optional[Iterable[str]],
    allowed_unsafe_sysctls: Optional[Iterable[str]],
    forbidden_sysctls: Optional[Iterable[str]],
) -> MustMatchPatterns:
    """Build the sysctl strategy from allowed and forbidden patterns."""
    return MustMatchPatterns(safe_allowlist, allowed_unsafe_sysctls, forbidden_sysctls)