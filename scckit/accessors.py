"""Read and write security context fields that may not exist yet.

The wrappers accept a missing (``None``) security context and create one
only when a meaningful value is stored. The effective container wrapper
reads values from the container first and falls back to the pod, and
writes to the container only when the effective value would change.
"""

from __future__ import annotations

from typing import Any, Generic, List, Optional, TypeVar

from scckit.api import DEFAULT_PROC_MOUNT, PodSecurityContext, SecurityContext

_C = TypeVar("_C")


class _ContextField:
    """A field of the wrapped context.

    Reading gives ``default`` when there is no context. Writing ``empty``
    while there is no context leaves it missing.
    """

    def __init__(self, default: Any = None, empty: Any = None) -> None:
        self.default = default
        self.empty = empty
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: Optional["_ContextWrapper[Any]"], objtype: Optional[type] = None) -> Any:
        if obj is None:
            return self
        context = obj._context
        if context is None:
            return self.default
        return getattr(context, self.name)

    def __set__(self, obj: "_ContextWrapper[Any]", value: Any) -> None:
        if obj._context is None and value is self.empty:
            return
        setattr(obj._ensure(), self.name, value)


class _ContextWrapper(Generic[_C]):
    _factory: type

    def __init__(self, context: Optional[_C] = None) -> None:
        self._context = context

    def _ensure(self) -> _C:
        if self._context is None:
            self._context = self._factory()
        return self._context


class PodSecurityContextWrapper(_ContextWrapper[PodSecurityContext]):
    """Accessor and mutator for a pod security context that may be missing."""

    _factory = PodSecurityContext

    host_network = _ContextField(default=False, empty=False)
    host_pid = _ContextField(default=False, empty=False)
    host_ipc = _ContextField(default=False, empty=False)
    selinux_options = _ContextField()
    run_as_user = _ContextField()
    run_as_group = _ContextField()
    run_as_non_root = _ContextField()
    seccomp_profile = _ContextField()
    fs_group = _ContextField()

    def __init__(self, pod_sc: Optional[PodSecurityContext] = None) -> None:
        super().__init__(pod_sc)

    @property
    def pod_security_context(self) -> Optional[PodSecurityContext]:
        """The wrapped context, created if a value was stored."""
        return self._context

    @property
    def supplemental_groups(self) -> Optional[List[int]]:
        if self._context is None:
            return None
        return self._context.supplemental_groups

    @supplemental_groups.setter
    def supplemental_groups(self, value: Optional[List[int]]) -> None:
        if self._context is None and not value:
            return
        context = self._ensure()
        if not value and not context.supplemental_groups:
            return
        context.supplemental_groups = value


class ContainerSecurityContextWrapper(_ContextWrapper[SecurityContext]):
    """Accessor and mutator for a container security context that may be missing."""

    _factory = SecurityContext

    capabilities = _ContextField()
    privileged = _ContextField()
    selinux_options = _ContextField()
    run_as_user = _ContextField()
    run_as_group = _ContextField()
    run_as_non_root = _ContextField()
    read_only_root_filesystem = _ContextField()
    seccomp_profile = _ContextField()
    allow_privilege_escalation = _ContextField()

    def __init__(self, container_sc: Optional[SecurityContext] = None) -> None:
        super().__init__(container_sc)

    @property
    def container_security_context(self) -> Optional[SecurityContext]:
        """The wrapped context, created if a value was stored."""
        return self._context

    @property
    def proc_mount(self) -> str:
        if self._context is None or self._context.proc_mount is None:
            return DEFAULT_PROC_MOUNT
        return self._context.proc_mount


class _EffectiveField:
    """A container field that, if ``inherits``, falls back to the pod's value."""

    def __init__(self, inherits: bool = False) -> None:
        self.inherits = inherits
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(
        self, obj: Optional["EffectiveContainerSecurityContextWrapper"], objtype: Optional[type] = None
    ) -> Any:
        if obj is None:
            return self
        value = getattr(obj.container_sc, self.name)
        if value is None and self.inherits:
            return getattr(obj.pod_sc, self.name)
        return value

    def __set__(self, obj: "EffectiveContainerSecurityContextWrapper", value: Any) -> None:
        if self.__get__(obj) != value:
            setattr(obj.container_sc, self.name, value)


class EffectiveContainerSecurityContextWrapper:
    """The values a container effectively runs with, given its pod's context."""

    capabilities = _EffectiveField()
    privileged = _EffectiveField()
    selinux_options = _EffectiveField(inherits=True)
    run_as_user = _EffectiveField(inherits=True)
    run_as_group = _EffectiveField(inherits=True)
    run_as_non_root = _EffectiveField(inherits=True)
    read_only_root_filesystem = _EffectiveField()
    seccomp_profile = _EffectiveField()
    allow_privilege_escalation = _EffectiveField()

    def __init__(
        self,
        pod_sc: PodSecurityContextWrapper,
        container_sc: ContainerSecurityContextWrapper,
    ) -> None:
        self.pod_sc = pod_sc
        self.container_sc = container_sc

    @property
    def container_security_context(self) -> Optional[SecurityContext]:
        """The container's own context, created if a value was stored."""
        return self.container_sc.container_security_context

    @property
    def proc_mount(self) -> str:
        return self.container_sc.proc_mount