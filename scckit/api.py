"""Pod, namespace and security context constraint data types."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from scckit.field import Path

# Namespace annotations holding pre-allocated values.
UID_RANGE_ANNOTATION = "openshift.io/sa.scc.uid-range"
MCS_ANNOTATION = "openshift.io/sa.scc.mcs"
SUPPLEMENTAL_GROUPS_ANNOTATION = "openshift.io/sa.scc.supplemental-groups"

# Seccomp annotation keys and profile names.
SECCOMP_POD_ANNOTATION_KEY = "seccomp.security.alpha.kubernetes.io/pod"
SECCOMP_CONTAINER_ANNOTATION_KEY_PREFIX = "container.seccomp.security.alpha.kubernetes.io/"
SECCOMP_PROFILE_RUNTIME_DEFAULT = "runtime/default"
DEPRECATED_SECCOMP_PROFILE_DOCKER_DEFAULT = "docker/default"
SECCOMP_PROFILE_NAME_UNCONFINED = "unconfined"
SECCOMP_LOCALHOST_PROFILE_NAME_PREFIX = "localhost/"

DEFAULT_PROC_MOUNT = "Default"

# Strategy type names.
RUN_AS_USER_MUST_RUN_AS = "MustRunAs"
RUN_AS_USER_MUST_RUN_AS_RANGE = "MustRunAsRange"
RUN_AS_USER_MUST_RUN_AS_NON_ROOT = "MustRunAsNonRoot"
RUN_AS_USER_RUN_AS_ANY = "RunAsAny"
SELINUX_MUST_RUN_AS = "MustRunAs"
SELINUX_RUN_AS_ANY = "RunAsAny"
FS_GROUP_MUST_RUN_AS = "MustRunAs"
FS_GROUP_RUN_AS_ANY = "RunAsAny"
SUPPLEMENTAL_GROUPS_MUST_RUN_AS = "MustRunAs"
SUPPLEMENTAL_GROUPS_RUN_AS_ANY = "RunAsAny"


class SeccompProfileType(enum.Enum):
    UNCONFINED = "Unconfined"
    RUNTIME_DEFAULT = "RuntimeDefault"
    LOCALHOST = "Localhost"


@dataclass
class SeccompProfile:
    type: SeccompProfileType
    localhost_profile: Optional[str] = None


@dataclass
class SELinuxOptions:
    user: str = ""
    role: str = ""
    type: str = ""
    level: str = ""


@dataclass
class Sysctl:
    name: str
    value: str = ""


@dataclass
class Capabilities:
    add: List[str] = field(default_factory=list)
    drop: List[str] = field(default_factory=list)


@dataclass
class ContainerPort:
    container_port: int = 0
    host_port: int = 0
    name: str = ""
    protocol: str = "TCP"


@dataclass
class PodSecurityContext:
    host_network: bool = False
    host_pid: bool = False
    host_ipc: bool = False
    selinux_options: Optional[SELinuxOptions] = None
    run_as_user: Optional[int] = None
    run_as_group: Optional[int] = None
    run_as_non_root: Optional[bool] = None
    supplemental_groups: Optional[List[int]] = None
    fs_group: Optional[int] = None
    sysctls: List[Sysctl] = field(default_factory=list)
    seccomp_profile: Optional[SeccompProfile] = None


@dataclass
class SecurityContext:
    capabilities: Optional[Capabilities] = None
    privileged: Optional[bool] = None
    selinux_options: Optional[SELinuxOptions] = None
    run_as_user: Optional[int] = None
    run_as_group: Optional[int] = None
    run_as_non_root: Optional[bool] = None
    read_only_root_filesystem: Optional[bool] = None
    allow_privilege_escalation: Optional[bool] = None
    proc_mount: Optional[str] = None
    seccomp_profile: Optional[SeccompProfile] = None


@dataclass
class Container:
    name: str = ""
    ports: List[ContainerPort] = field(default_factory=list)
    security_context: Optional[SecurityContext] = None


@dataclass
class PodSpec:
    containers: List[Container] = field(default_factory=list)
    init_containers: List[Container] = field(default_factory=list)
    ephemeral_containers: List[Container] = field(default_factory=list)
    security_context: Optional[PodSecurityContext] = None


@dataclass
class Pod:
    name: str = ""
    namespace: str = ""
    annotations: Optional[Dict[str, str]] = None
    spec: PodSpec = field(default_factory=PodSpec)

    def all_containers(self, fld_path: Optional[Path] = None) -> Iterator[Tuple[Container, Path]]:
        """Yield every init, regular and ephemeral container with its field path."""
        base = fld_path if fld_path is not None else Path()
        groups = (
            ("initContainers", self.spec.init_containers),
            ("containers", self.spec.containers),
            ("ephemeralContainers", self.spec.ephemeral_containers),
        )
        for name, containers in groups:
            list_path = base.child(name)
            for i, container in enumerate(containers):
                yield container, list_path.index(i)


@dataclass
class Namespace:
    name: str = ""
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass
class IDRange:
    min: int = 0
    max: int = 0


@dataclass
class RunAsUserStrategyOptions:
    type: str = ""
    uid: Optional[int] = None
    uid_range_min: Optional[int] = None
    uid_range_max: Optional[int] = None


@dataclass
class SELinuxContextStrategyOptions:
    type: str = ""
    selinux_options: Optional[SELinuxOptions] = None


@dataclass
class FSGroupStrategyOptions:
    type: str = ""
    ranges: List[IDRange] = field(default_factory=list)


@dataclass
class SupplementalGroupsStrategyOptions:
    type: str = ""
    ranges: List[IDRange] = field(default_factory=list)


@dataclass
class SecurityContextConstraints:
    name: str = ""
    priority: Optional[int] = None
    users: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    allow_privileged_container: bool = False
    default_add_capabilities: List[str] = field(default_factory=list)
    required_drop_capabilities: List[str] = field(default_factory=list)
    allowed_capabilities: List[str] = field(default_factory=list)
    allow_host_network: bool = False
    allow_host_ports: bool = False
    allow_host_pid: bool = False
    allow_host_ipc: bool = False
    default_allow_privilege_escalation: Optional[bool] = None
    allow_privilege_escalation: Optional[bool] = None
    selinux_context: SELinuxContextStrategyOptions = field(default_factory=SELinuxContextStrategyOptions)
    run_as_user: RunAsUserStrategyOptions = field(default_factory=RunAsUserStrategyOptions)
    supplemental_groups: SupplementalGroupsStrategyOptions = field(
        default_factory=SupplementalGroupsStrategyOptions
    )
    fs_group: FSGroupStrategyOptions = field(default_factory=FSGroupStrategyOptions)
    read_only_root_filesystem: bool = False
    seccomp_profiles: List[str] = field(default_factory=list)
    allowed_unsafe_sysctls: List[str] = field(default_factory=list)
    forbidden_sysctls: List[str] = field(default_factory=list)


@dataclass
class UserInfo:
    name: str = ""
    uid: str = ""
    groups: List[str] = field(default_factory=list)
    extra: Dict[str, List[str]] = field(default_factory=dict)