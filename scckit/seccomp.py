"""Seccomp profile strategy for security context constraints."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from scckit.api import (
    DEPRECATED_SECCOMP_PROFILE_DOCKER_DEFAULT,
    SECCOMP_CONTAINER_ANNOTATION_KEY_PREFIX,
    SECCOMP_LOCALHOST_PROFILE_NAME_PREFIX,
    SECCOMP_POD_ANNOTATION_KEY,
    SECCOMP_PROFILE_NAME_UNCONFINED,
    SECCOMP_PROFILE_RUNTIME_DEFAULT,
    Container,
    Pod,
    SeccompProfile,
    SeccompProfileType,
)
from scckit.field import FieldError, Path, forbidden

ALLOW_ANY_PROFILE = "*"

_RUNTIME_DEFAULT_NAMES = (DEPRECATED_SECCOMP_PROFILE_DOCKER_DEFAULT, SECCOMP_PROFILE_RUNTIME_DEFAULT)


def seccomp_annotation_for_field(profile: SeccompProfile) -> str:
    """Return the annotation value that corresponds to a seccomp profile field."""
    if profile.type is SeccompProfileType.UNCONFINED:
        return SECCOMP_PROFILE_NAME_UNCONFINED
    if profile.type is SeccompProfileType.RUNTIME_DEFAULT:
        return SECCOMP_PROFILE_RUNTIME_DEFAULT
    if profile.type is SeccompProfileType.LOCALHOST and profile.localhost_profile is not None:
        return SECCOMP_LOCALHOST_PROFILE_NAME_PREFIX + profile.localhost_profile
    return ""


def _pod_field_profile(pod: Pod) -> Optional[SeccompProfile]:
    sc = pod.spec.security_context
    return sc.seccomp_profile if sc is not None else None


def profile_for_container(pod: Pod, container: Container) -> str:
    """Return the container's profile if set, otherwise the pod's."""
    if container.security_context is not None and container.security_context.seccomp_profile is not None:
        return seccomp_annotation_for_field(container.security_context.seccomp_profile)
    annotations = pod.annotations or {}
    key = SECCOMP_CONTAINER_ANNOTATION_KEY_PREFIX + container.name
    if key in annotations:
        return annotations[key]
    pod_profile = _pod_field_profile(pod)
    if pod_profile is not None:
        return seccomp_annotation_for_field(pod_profile)
    return annotations.get(SECCOMP_POD_ANNOTATION_KEY, "")


class SeccompStrategy:
    """Enforces the seccomp profiles allowed by a constraint."""

    def __init__(self, allowed_profiles: Optional[Iterable[str]] = None) -> None:
        self.allowed_profiles: List[str] = []
        self.allow_any_profile = False
        self.runtime_default_allowed = False
        for profile in allowed_profiles or ():
            if profile == ALLOW_ANY_PROFILE:
                self.allow_any_profile = True
                continue
            # docker/default and runtime/default are treated as the same profile.
            if profile in _RUNTIME_DEFAULT_NAMES:
                self.runtime_default_allowed = True
            self.allowed_profiles.append(profile)

    def generate(self, annotations: Optional[Dict[str, str]], pod: Pod) -> str:
        """Return the profile the pod should use."""
        existing = (annotations or {}).get(SECCOMP_POD_ANNOTATION_KEY, "")
        if existing:
            return existing
        pod_profile = _pod_field_profile(pod)
        if pod_profile is not None:
            return seccomp_annotation_for_field(pod_profile)
        if self.allowed_profiles:
            return self.allowed_profiles[0]
        return ""

    def validate_pod(self, pod: Pod) -> List[FieldError]:
        """Check the pod-level profile against the strategy."""
        path = Path("pod", "metadata", "annotations").key(SECCOMP_POD_ANNOTATION_KEY)
        profile = (pod.annotations or {}).get(SECCOMP_POD_ANNOTATION_KEY, "")
        if not profile:
            pod_profile = _pod_field_profile(pod)
            if pod_profile is not None:
                profile = seccomp_annotation_for_field(pod_profile)
        error = self._validate_profile(path, profile)
        return [error] if error is not None else []

    def validate_container(self, pod: Pod, container: Container) -> List[FieldError]:
        """Check the container's effective profile against the strategy."""
        path = Path("pod", "metadata", "annotations").key(
            SECCOMP_CONTAINER_ANNOTATION_KEY_PREFIX + container.name
        )
        error = self._validate_profile(path, profile_for_container(pod, container))
        return [error] if error is not None else []

    def _validate_profile(self, path: Path, profile: str) -> Optional[FieldError]:
        if not self.allow_any_profile and not self.allowed_profiles and profile:
            return forbidden(path, "seccomp may not be set")
        if not self.allowed_profiles and not profile:
            return None
        if self.allow_any_profile:
            return None
        if profile in self.allowed_profiles:
            return None
        if self.runtime_default_allowed and profile in _RUNTIME_DEFAULT_NAMES:
            return None
        valid = "[" + " ".join(self.allowed_profiles) + "]"
        return forbidden(path, f"{profile} is not an allowed seccomp profile. Valid values are {valid}")