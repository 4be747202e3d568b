"""Match constraints to users and resolve values pre-allocated on namespaces."""

from __future__ import annotations

import abc
import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from scckit.api import (
    FS_GROUP_MUST_RUN_AS,
    MCS_ANNOTATION,
    RUN_AS_USER_MUST_RUN_AS_RANGE,
    SELINUX_MUST_RUN_AS,
    SUPPLEMENTAL_GROUPS_ANNOTATION,
    SUPPLEMENTAL_GROUPS_MUST_RUN_AS,
    UID_RANGE_ANNOTATION,
    Container,
    IDRange,
    Namespace,
    Pod,
    SecurityContextConstraints,
    UserInfo,
)
from scckit.field import FieldError, Path, invalid
from scckit.interfaces import SecurityContextConstraintsProvider

log = logging.getLogger(__name__)

SECURITY_GROUP_NAME = "security.openshift.io"
SCC_RESOURCE = "securitycontextconstraints"

_UINT32_MAX = 2**32 - 1
_SLASH_BLOCK = re.compile(r"(\d+)/(\d+)")
_DASH_BLOCK = re.compile(r"(\d+)-(\d+)")


class Authorizer(abc.ABC):
    """Decides whether a user may perform a verb on a resource."""

    @abc.abstractmethod
    def authorize(
        self,
        user: UserInfo,
        verb: str,
        namespace: str,
        name: str,
        api_group: str,
        resource: str,
    ) -> bool:
        """Return True if the request is allowed; raise if no decision can be made."""


@dataclass(frozen=True)
class Block:
    """An inclusive range of ids."""

    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1


def _to_uint32(text: str) -> int:
    value = int(text)
    if value > _UINT32_MAX:
        raise ValueError(f"value {text} is out of range")
    return value


def parse_block(text: str) -> Block:
    """Parse a block written as ``start/size`` or ``start-end``."""
    if "/" in text:
        match = _SLASH_BLOCK.fullmatch(text)
        if match is None:
            raise ValueError(f"block not in the format \"<start>/<size>\": {text!r}")
        start, size = _to_uint32(match.group(1)), _to_uint32(match.group(2))
        if size == 0:
            raise ValueError(f"block size must be greater than zero: {text!r}")
        end = start + size - 1
        if end > _UINT32_MAX:
            raise ValueError(f"block end is out of range: {text!r}")
        return Block(start, end)

    match = _DASH_BLOCK.fullmatch(text)
    if match is None:
        raise ValueError(f"block not in the format \"<start>-<end>\": {text!r}")
    start, end = _to_uint32(match.group(1)), _to_uint32(match.group(2))
    if end < start:
        raise ValueError(f"block start is after block end: {text!r}")
    return Block(start, end)


def _authorized_for_scc(
    scc_name: str, user_info: UserInfo, namespace: str, authorizer: Authorizer
) -> bool:
    try:
        return bool(
            authorizer.authorize(
                user_info, "use", namespace, scc_name, SECURITY_GROUP_NAME, SCC_RESOURCE
            )
        )
    except Exception as exc:  # an undecidable request is treated as a denial
        log.debug("cannot authorize for SCC %s: %s", scc_name, exc)
        return False


def constraint_applies_to(
    scc_name: str,
    scc_users: Iterable[str],
    scc_groups: Iterable[str],
    user_info: UserInfo,
    namespace: str,
    authorizer: Optional[Authorizer],
) -> bool:
    """Tell whether the user may use the constraint, directly, by group or by grant."""
    if user_info.name in scc_users:
        return True
    groups = set(scc_groups)
    if any(group in groups for group in user_info.groups):
        return True
    if authorizer is not None:
        return _authorized_for_scc(scc_name, user_info, namespace, authorizer)
    return False


def _assign_container_security_context(
    provider: SecurityContextConstraintsProvider,
    pod: Pod,
    container: Container,
    fld_path: Path,
) -> List[FieldError]:
    try:
        sc = provider.create_container_security_context(pod, container)
    except ValueError as exc:
        return [invalid(fld_path, "", str(exc))]
    container.security_context = sc
    return list(provider.validate_container_security_context(pod, container, fld_path))


def assign_security_context(
    provider: SecurityContextConstraintsProvider, pod: Pod, fld_path: Optional[Path]
) -> List[FieldError]:
    """Set the pod's and every container's security context and validate them.

    All containers must validate against the same provider for the pod to be valid.
    """
    base = fld_path if fld_path is not None else Path()
    sc_path = base.child("spec", "securityContext")
    errors: List[FieldError] = []

    try:
        psc, annotations = provider.create_pod_security_context(pod)
    except ValueError as exc:
        errors.append(invalid(sc_path, pod.spec.security_context, str(exc)))
        psc, annotations = None, None

    pod.spec.security_context = psc
    pod.annotations = annotations
    errors.extend(provider.validate_pod_security_context(pod, sc_path))

    for container, path in pod.all_containers(base):
        errors.extend(_assign_container_security_context(provider, pod, container, path))
    return errors


def get_preallocated_uid_range(namespace: Namespace) -> Tuple[int, int]:
    """Return the (min, max) uid range annotated on the namespace."""
    value = namespace.annotations.get(UID_RANGE_ANNOTATION)
    if value is None:
        raise ValueError(f"unable to find annotation {UID_RANGE_ANNOTATION}")
    if not value:
        raise ValueError(f"found annotation {UID_RANGE_ANNOTATION} but it was empty")
    block = parse_block(value)
    log.debug(
        "got preallocated values for min: %d, max: %d for uid range in namespace %s",
        block.start,
        block.end,
        namespace.name,
    )
    return block.start, block.end


def get_preallocated_level(namespace: Namespace) -> str:
    """Return the MCS level annotated on the namespace."""
    level = namespace.annotations.get(MCS_ANNOTATION)
    if level is None:
        raise ValueError(f"unable to find annotation {MCS_ANNOTATION}")
    if not level:
        raise ValueError(f"found annotation {MCS_ANNOTATION} but it was empty")
    log.debug(
        "got preallocated value for level: %s for selinux options in namespace %s",
        level,
        namespace.name,
    )
    return level


def _get_supplemental_groups_annotation(namespace: Namespace) -> str:
    groups = namespace.annotations.get(SUPPLEMENTAL_GROUPS_ANNOTATION)
    if groups is None:
        log.debug(
            "unable to find supplemental group annotation %s falling back to %s",
            SUPPLEMENTAL_GROUPS_ANNOTATION,
            UID_RANGE_ANNOTATION,
        )
        groups = namespace.annotations.get(UID_RANGE_ANNOTATION)
        if groups is None:
            raise ValueError(
                f"unable to find supplemental group or uid annotation for namespace {namespace.name}"
            )
    if not groups:
        raise ValueError(
            f"unable to find groups using {SUPPLEMENTAL_GROUPS_ANNOTATION} "
            f"and {UID_RANGE_ANNOTATION} annotations"
        )
    return groups


def parse_supplemental_group_annotation(groups: str) -> List[Block]:
    """Parse a comma separated list of blocks."""
    blocks = [parse_block(segment) for segment in groups.split(",")]
    if not blocks:
        raise ValueError(f"no blocks parsed from annotation {groups}")
    return blocks


def get_preallocated_fs_group(namespace: Namespace) -> List[IDRange]:
    """Return the fs group range: the first id of the namespace's first group block."""
    groups = _get_supplemental_groups_annotation(namespace)
    log.debug("got preallocated value for groups: %s in namespace %s", groups, namespace.name)
    first = parse_supplemental_group_annotation(groups)[0]
    return [IDRange(min=first.start, max=first.start)]


def get_preallocated_supplemental_groups(namespace: Namespace) -> List[IDRange]:
    """Return one id range for each group block annotated on the namespace."""
    groups = _get_supplemental_groups_annotation(namespace)
    log.debug("got preallocated value for groups: %s in namespace %s", groups, namespace.name)
    return [
        IDRange(min=block.start, max=block.end)
        for block in parse_supplemental_group_annotation(groups)
    ]


def requires_preallocated_uid_range(constraint: SecurityContextConstraints) -> bool:
    """True if the user strategy is a range with neither bound set."""
    opts = constraint.run_as_user
    if opts.type != RUN_AS_USER_MUST_RUN_AS_RANGE:
        return False
    return opts.uid_range_min is None and opts.uid_range_max is None


def requires_preallocated_selinux_level(constraint: SecurityContextConstraints) -> bool:
    """True if the SELinux strategy is must-run-as with no level set."""
    opts = constraint.selinux_context
    if opts.type != SELINUX_MUST_RUN_AS:
        return False
    if opts.selinux_options is None:
        return True
    return opts.selinux_options.level == ""


def requires_preallocated_supplemental_groups(constraint: SecurityContextConstraints) -> bool:
    """True if the supplemental groups strategy is must-run-as with no ranges."""
    opts = constraint.supplemental_groups
    if opts.type != SUPPLEMENTAL_GROUPS_MUST_RUN_AS:
        return False
    return not opts.ranges


def requires_preallocated_fs_group(constraint: SecurityContextConstraints) -> bool:
    """True if the fs group strategy is must-run-as with no ranges."""
    opts = constraint.fs_group
    if opts.type != FS_GROUP_MUST_RUN_AS:
        return False
    return not opts.ranges