"""The default constraint provider: generates and validates security contexts."""

from __future__ import annotations

import abc
from typing import Dict, Iterable, List, Optional, Tuple

from scckit.accessors import (
    ContainerSecurityContextWrapper,
    EffectiveContainerSecurityContextWrapper,
    PodSecurityContextWrapper,
)
from scckit.api import (
    FS_GROUP_MUST_RUN_AS,
    FS_GROUP_RUN_AS_ANY,
    RUN_AS_USER_MUST_RUN_AS,
    RUN_AS_USER_MUST_RUN_AS_NON_ROOT,
    RUN_AS_USER_MUST_RUN_AS_RANGE,
    RUN_AS_USER_RUN_AS_ANY,
    SECCOMP_CONTAINER_ANNOTATION_KEY_PREFIX,
    SECCOMP_POD_ANNOTATION_KEY,
    SUPPLEMENTAL_GROUPS_MUST_RUN_AS,
    SUPPLEMENTAL_GROUPS_RUN_AS_ANY,
    Capabilities,
    Container,
    FSGroupStrategyOptions,
    IDRange,
    Pod,
    PodSecurityContext,
    RunAsUserStrategyOptions,
    SecurityContext,
    SecurityContextConstraints,
    SupplementalGroupsStrategyOptions,
)
from scckit.field import FieldError, Path, invalid, required
from scckit.interfaces import (
    SecurityContextConstraintsProvider,
    create_seccomp_strategy,
    create_selinux_strategy,
    create_sysctls_strategy,
    seccomp_field_for_annotation,
)
from scckit.sysctl import safe_sysctl_allowlist

FS_GROUP_FIELD = "fsGroup"
SUPPLEMENTAL_GROUPS_FIELD = "supplementalGroups"
ALLOW_ALL_CAPABILITIES = "*"
_CAP_SYS_ADMIN = "CAP_SYS_ADMIN"


# --- run-as-user strategies -------------------------------------------------


class _UserStrategy(abc.ABC):
    @abc.abstractmethod
    def generate(self, pod: Pod, container: Container) -> Optional[int]:
        """Return the uid a container should run as, or None."""

    @abc.abstractmethod
    def validate(
        self,
        fld_path: Path,
        pod: Pod,
        container: Container,
        run_as_non_root: Optional[bool],
        run_as_user: Optional[int],
    ) -> List[FieldError]:
        """Check the container's user settings."""


class _MustRunAsUser(_UserStrategy):
    def __init__(self, opts: RunAsUserStrategyOptions) -> None:
        if opts.uid is None:
            raise ValueError("MustRunAs requires a UID")
        self.uid = opts.uid

    def generate(self, pod, container):
        return self.uid

    def validate(self, fld_path, pod, container, run_as_non_root, run_as_user):
        if run_as_user is None:
            return [required(fld_path.child("runAsUser"), "")]
        if run_as_user != self.uid:
            return [invalid(fld_path.child("runAsUser"), run_as_user, f"must be: {self.uid}")]
        return []


class _MustRunAsRangeUser(_UserStrategy):
    def __init__(self, opts: RunAsUserStrategyOptions) -> None:
        if opts.uid_range_min is None:
            raise ValueError("MustRunAsRange requires a UIDRangeMin")
        if opts.uid_range_max is None:
            raise ValueError("MustRunAsRange requires a UIDRangeMax")
        self.low = opts.uid_range_min
        self.high = opts.uid_range_max

    def generate(self, pod, container):
        return self.low

    def validate(self, fld_path, pod, container, run_as_non_root, run_as_user):
        if run_as_user is None:
            return [required(fld_path.child("runAsUser"), "")]
        if not self.low <= run_as_user <= self.high:
            detail = f"must be in the ranges: [{self.low}, {self.high}]"
            return [invalid(fld_path.child("runAsUser"), run_as_user, detail)]
        return []


class _RunAsNonRootUser(_UserStrategy):
    def __init__(self, opts: RunAsUserStrategyOptions) -> None:
        self.opts = opts

    def generate(self, pod, container):
        return None

    def validate(self, fld_path, pod, container, run_as_non_root, run_as_user):
        errors = []
        if run_as_non_root is None and run_as_user is None:
            errors.append(required(fld_path.child("runAsNonRoot"), "must be true"))
        if run_as_non_root is not None and not run_as_non_root:
            errors.append(invalid(fld_path.child("runAsNonRoot"), False, "must be true"))
        if run_as_user is not None and run_as_user == 0:
            errors.append(
                invalid(fld_path.child("runAsUser"), 0, "running with the root UID is forbidden")
            )
        return errors


class _RunAsAnyUser(_UserStrategy):
    def __init__(self, opts: RunAsUserStrategyOptions) -> None:
        self.opts = opts

    def generate(self, pod, container):
        return None

    def validate(self, fld_path, pod, container, run_as_non_root, run_as_user):
        return []


_USER_STRATEGIES = {
    RUN_AS_USER_MUST_RUN_AS: _MustRunAsUser,
    RUN_AS_USER_MUST_RUN_AS_RANGE: _MustRunAsRangeUser,
    RUN_AS_USER_MUST_RUN_AS_NON_ROOT: _RunAsNonRootUser,
    RUN_AS_USER_RUN_AS_ANY: _RunAsAnyUser,
}


def _create_user_strategy(opts: RunAsUserStrategyOptions) -> _UserStrategy:
    try:
        strategy = _USER_STRATEGIES[opts.type]
    except KeyError:
        raise ValueError(f"Unrecognized RunAsUser strategy type {opts.type}") from None
    return strategy(opts)


# --- group strategies -------------------------------------------------------


class _GroupStrategy(abc.ABC):
    @abc.abstractmethod
    def generate(self, pod: Pod) -> Optional[List[int]]:
        """Return the groups to use, or None."""

    @abc.abstractmethod
    def generate_single(self, pod: Pod) -> Optional[int]:
        """Return a single group to use, or None."""

    @abc.abstractmethod
    def validate(self, fld_path: Path, pod: Pod, groups: List[int]) -> List[FieldError]:
        """Check the groups against the strategy."""


class _RunAsAnyGroup(_GroupStrategy):
    def generate(self, pod):
        return None

    def generate_single(self, pod):
        return None

    def validate(self, fld_path, pod, groups):
        return []


class _MustRunAsGroup(_GroupStrategy):
    def __init__(self, ranges: Iterable[IDRange], field_name: str) -> None:
        self.ranges = list(ranges)
        if not self.ranges:
            raise ValueError(f"ranges must be supplied for MustRunAs ({field_name})")
        self.field_name = field_name

    def generate(self, pod):
        return [self.ranges[0].min]

    def generate_single(self, pod):
        return self.ranges[0].min

    def _allowed(self, group: int) -> bool:
        return any(rng.min <= group <= rng.max for rng in self.ranges)

    def validate(self, fld_path, pod, groups):
        path = fld_path.child(self.field_name)
        errors = []
        if not groups:
            errors.append(
                invalid(path, groups, "unable to validate empty groups against required ranges")
            )
        errors.extend(
            invalid(path, groups, f"{group} is not an allowed group")
            for group in groups
            if not self._allowed(group)
        )
        return errors


def _create_fs_group_strategy(opts: FSGroupStrategyOptions) -> _GroupStrategy:
    if opts.type == FS_GROUP_RUN_AS_ANY:
        return _RunAsAnyGroup()
    if opts.type == FS_GROUP_MUST_RUN_AS:
        return _MustRunAsGroup(opts.ranges, FS_GROUP_FIELD)
    raise ValueError(f"Unrecognized FSGroup strategy type {opts.type}")


def _create_supplemental_group_strategy(opts: SupplementalGroupsStrategyOptions) -> _GroupStrategy:
    if opts.type == SUPPLEMENTAL_GROUPS_RUN_AS_ANY:
        return _RunAsAnyGroup()
    if opts.type == SUPPLEMENTAL_GROUPS_MUST_RUN_AS:
        return _MustRunAsGroup(opts.ranges, SUPPLEMENTAL_GROUPS_FIELD)
    raise ValueError(f"Unrecognized SupplementalGroups strategy type {opts.type}")


# --- capabilities -----------------------------------------------------------


class _DefaultCapabilities:
    def __init__(
        self,
        default_add: Iterable[str],
        required_drop: Iterable[str],
        allowed: Iterable[str],
    ) -> None:
        self.default_add = list(default_add)
        self.required_drop = list(required_drop)
        self.allowed = list(allowed)

    def generate(self, pod: Pod, container: Container) -> Optional[Capabilities]:
        container_caps = None
        container_add: set = set()
        container_drop: set = set()
        sc = container.security_context
        if sc is not None and sc.capabilities is not None:
            container_caps = sc.capabilities
            container_add = set(container_caps.add)
            container_drop = set(container_caps.drop)

        # a default add that the container explicitly drops is not added
        default_add = set(self.default_add) - container_drop
        combined_add = default_add | container_add
        combined_drop = set(self.required_drop) | container_drop
        if len(combined_add) == len(container_add) and len(combined_drop) == len(container_drop):
            return container_caps
        return Capabilities(add=sorted(combined_add), drop=sorted(combined_drop))

    def validate(
        self, fld_path: Path, pod: Pod, container: Container, capabilities: Optional[Capabilities]
    ) -> List[FieldError]:
        if capabilities is None:
            if not self.required_drop:
                return []
            return [required(fld_path.child("capabilities"), "required capabilities are not dropped")]

        allowed = set(self.allowed)
        if ALLOW_ALL_CAPABILITIES in allowed:
            return []

        defaults = set(self.default_add)
        errors = [
            invalid(fld_path.child("capabilities", "add"), cap, "capability may not be added")
            for cap in capabilities.add
            if cap not in defaults and cap not in allowed
        ]
        drops = set(capabilities.drop)
        errors.extend(
            invalid(
                fld_path.child("capabilities", "drop"),
                capabilities.drop,
                f"{cap} is required to be dropped but was not found",
            )
            for cap in self.required_drop
            if cap not in drops
        )
        return errors


# --- the provider -----------------------------------------------------------


class SimpleProvider(SecurityContextConstraintsProvider):
    """Generates and validates security contexts for one constraint."""

    def __init__(self, scc: Optional[SecurityContextConstraints]) -> None:
        if scc is None:
            raise ValueError("SimpleProvider requires a SecurityContextConstraints")
        self._scc = scc
        self._user_strategy = _create_user_strategy(scc.run_as_user)
        self._selinux_strategy = create_selinux_strategy(scc.selinux_context)
        self._fs_group_strategy = _create_fs_group_strategy(scc.fs_group)
        self._supplemental_group_strategy = _create_supplemental_group_strategy(
            scc.supplemental_groups
        )
        self._capabilities_strategy = _DefaultCapabilities(
            scc.default_add_capabilities, scc.required_drop_capabilities, scc.allowed_capabilities
        )
        self._seccomp_strategy = create_seccomp_strategy(scc.seccomp_profiles)
        self._sysctls_strategy = create_sysctls_strategy(
            safe_sysctl_allowlist(), scc.allowed_unsafe_sysctls, scc.forbidden_sysctls
        )

    @property
    def scc(self) -> SecurityContextConstraints:
        return self._scc

    def create_pod_security_context(
        self, pod: Pod
    ) -> Tuple[Optional[PodSecurityContext], Optional[Dict[str, str]]]:
        """Fill in unset pod-level settings; values already set are kept."""
        sc = PodSecurityContextWrapper(pod.spec.security_context)
        annotations = dict(pod.annotations) if pod.annotations is not None else None

        if sc.supplemental_groups is None:
            sc.supplemental_groups = self._supplemental_group_strategy.generate(pod)
        if sc.fs_group is None:
            sc.fs_group = self._fs_group_strategy.generate_single(pod)
        if sc.selinux_options is None:
            sc.selinux_options = self._selinux_strategy.generate(pod, None)

        # Only generated at pod level; containers inherit the pod's profile.
        profile = self._seccomp_strategy.generate(pod.annotations, pod)
        if profile:
            if annotations is None:
                annotations = {}
            annotations[SECCOMP_POD_ANNOTATION_KEY] = profile
            sc.seccomp_profile = seccomp_field_for_annotation(profile)

        return sc.pod_security_context, annotations

    def create_container_security_context(
        self, pod: Pod, container: Container
    ) -> Optional[SecurityContext]:
        """Fill in unset container settings; values already set are kept."""
        sc = EffectiveContainerSecurityContextWrapper(
            PodSecurityContextWrapper(pod.spec.security_context),
            ContainerSecurityContextWrapper(container.security_context),
        )
        if sc.run_as_user is None:
            sc.run_as_user = self._user_strategy.generate(pod, container)
        if sc.selinux_options is None:
            sc.selinux_options = self._selinux_strategy.generate(pod, container)

        if sc.run_as_non_root is None:
            run_as_user = sc.run_as_user
            if run_as_user is None:
                non_root = self._scc.run_as_user.type == RUN_AS_USER_MUST_RUN_AS_NON_ROOT
            else:
                non_root = run_as_user > 0
            if non_root:
                sc.run_as_non_root = True

        caps = self._capabilities_strategy.generate(pod, container)
        sc.capabilities = caps

        if self._scc.read_only_root_filesystem and sc.read_only_root_filesystem is None:
            sc.read_only_root_filesystem = True

        is_privileged = bool(sc.privileged)
        adds_sys_admin = caps is not None and _CAP_SYS_ADMIN in caps.add

        annotations = pod.annotations or {}
        container_key = SECCOMP_CONTAINER_ANNOTATION_KEY_PREFIX + container.name
        if container_key in annotations:
            sc.seccomp_profile = seccomp_field_for_annotation(annotations[container_key])

        # Privileged containers and those adding CAP_SYS_ADMIN may not have
        # escalation turned off, so the default is not applied to them.
        if (
            self._scc.default_allow_privilege_escalation is not None
            and sc.allow_privilege_escalation is None
            and not is_privileged
            and not adds_sys_admin
        ):
            sc.allow_privilege_escalation = self._scc.default_allow_privilege_escalation

        if self._scc.allow_privilege_escalation is False and sc.allow_privilege_escalation is None:
            sc.allow_privilege_escalation = False

        return sc.container_security_context

    def validate_pod_security_context(self, pod: Pod, fld_path: Optional[Path]) -> List[FieldError]:
        """Check the pod's security context against the constraint."""
        base = fld_path if fld_path is not None else Path()
        sc = PodSecurityContextWrapper(pod.spec.security_context)
        errors: List[FieldError] = []

        fs_groups = [sc.fs_group] if sc.fs_group is not None else []
        errors.extend(self._fs_group_strategy.validate(base, pod, fs_groups))
        errors.extend(
            self._supplemental_group_strategy.validate(base, pod, list(sc.supplemental_groups or []))
        )
        errors.extend(self._seccomp_strategy.validate_pod(pod))
        errors.extend(
            self._selinux_strategy.validate(base.child("seLinuxOptions"), pod, None, sc.selinux_options)
        )
        errors.extend(self._host_namespace_errors(base, sc))
        errors.extend(self._sysctls_strategy.validate(pod))
        return errors

    def validate_container_security_context(
        self, pod: Pod, container: Container, fld_path: Optional[Path]
    ) -> List[FieldError]:
        """Check a container's effective security context against the constraint."""
        base = fld_path if fld_path is not None else Path()
        pod_sc = PodSecurityContextWrapper(pod.spec.security_context)
        sc = EffectiveContainerSecurityContextWrapper(
            pod_sc, ContainerSecurityContextWrapper(container.security_context)
        )
        errors: List[FieldError] = []

        errors.extend(
            self._user_strategy.validate(base, pod, container, sc.run_as_non_root, sc.run_as_user)
        )
        errors.extend(
            self._selinux_strategy.validate(
                base.child("seLinuxOptions"), pod, container, sc.selinux_options
            )
        )
        errors.extend(self._seccomp_strategy.validate_container(pod, container))

        privileged = sc.privileged
        if not self._scc.allow_privileged_container and privileged:
            errors.append(
                invalid(base.child("privileged"), privileged, "Privileged containers are not allowed")
            )

        errors.extend(self._capabilities_strategy.validate(base, pod, container, sc.capabilities))

        if not self._scc.allow_host_network and pod_sc.host_network:
            errors.append(
                invalid(base.child("hostNetwork"), True, "Host network is not allowed to be used")
            )

        if not self._scc.allow_host_ports:
            for other, path in pod.all_containers(base):
                errors.extend(self._host_port_errors(other, path))

        if not self._scc.allow_host_pid and pod_sc.host_pid:
            errors.append(invalid(base.child("hostPID"), True, "Host PID is not allowed to be used"))
        if not self._scc.allow_host_ipc and pod_sc.host_ipc:
            errors.append(invalid(base.child("hostIPC"), True, "Host IPC is not allowed to be used"))

        if self._scc.read_only_root_filesystem:
            read_only = sc.read_only_root_filesystem
            path = base.child("readOnlyRootFilesystem")
            if read_only is None:
                errors.append(
                    invalid(path, None, "ReadOnlyRootFilesystem may not be nil and must be set to true")
                )
            elif not read_only:
                errors.append(invalid(path, False, "ReadOnlyRootFilesystem must be set to true"))

        if self._scc.allow_privilege_escalation is False:
            allow_escalation = sc.allow_privilege_escalation
            if allow_escalation is None or allow_escalation:
                errors.append(
                    invalid(
                        base.child("allowPrivilegeEscalation"),
                        allow_escalation,
                        "Allowing privilege escalation for containers is not allowed",
                    )
                )
        return errors

    def _host_namespace_errors(self, base: Path, sc: PodSecurityContextWrapper) -> List[FieldError]:
        errors = []
        if not self._scc.allow_host_network and sc.host_network:
            errors.append(
                invalid(base.child("hostNetwork"), True, "Host network is not allowed to be used")
            )
        if not self._scc.allow_host_pid and sc.host_pid:
            errors.append(invalid(base.child("hostPID"), True, "Host PID is not allowed to be used"))
        if not self._scc.allow_host_ipc and sc.host_ipc:
            errors.append(invalid(base.child("hostIPC"), True, "Host IPC is not allowed to be used"))
        return errors

    @staticmethod
    def _host_port_errors(container: Container, fld_path: Path) -> List[FieldError]:
        return [
            invalid(fld_path.child("hostPort"), port.host_port, "Host ports are not allowed to be used")
            for port in container.ports
            if port.host_port > 0
        ]