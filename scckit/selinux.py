"""SELinux strategies for security context constraints."""

from __future__ import annotations

import abc
import dataclasses
from typing import List, Optional

from scckit.api import Container, Pod, SELinuxContextStrategyOptions, SELinuxOptions
from scckit.field import FieldError, Path, invalid, required


def to_internal_selinux_options(external: Optional[SELinuxOptions]) -> Optional[SELinuxOptions]:
    """Return an independent copy of the options, or None."""
    if external is None:
        return None
    return dataclasses.replace(external)


def _equal_categories(expected: str, actual: str) -> bool:
    return sorted(expected.split(",")) == sorted(actual.split(","))


def equal_levels(expected: str, actual: str) -> bool:
    """Compare SELinux levels, ignoring the order of categories."""
    if expected == actual:
        return True
    expected_parts = expected.split(":", 1)
    actual_parts = actual.split(":", 1)
    if len(expected_parts) != 2 or len(actual_parts) != 2:
        return False
    if expected_parts[0] != actual_parts[0]:
        return False
    return _equal_categories(expected_parts[1], actual_parts[1])


class SELinuxStrategy(abc.ABC):
    """Generates and validates SELinux options for pods and containers."""

    @abc.abstractmethod
    def generate(self, pod: Optional[Pod], container: Optional[Container]) -> Optional[SELinuxOptions]:
        """Create SELinux options based on the strategy's rules."""

    @abc.abstractmethod
    def validate(
        self,
        fld_path: Optional[Path],
        pod: Optional[Pod],
        container: Optional[Container],
        options: Optional[SELinuxOptions],
    ) -> List[FieldError]:
        """Check that the options fall within the strategy."""


class MustRunAs(SELinuxStrategy):
    """Requires the exact SELinux options configured on the constraint."""

    def __init__(self, options: Optional[SELinuxContextStrategyOptions]) -> None:
        if options is None:
            raise ValueError("MustRunAs requires SELinuxContextStrategyOptions")
        if options.selinux_options is None:
            raise ValueError("MustRunAs requires SELinuxOptions")
        self.options = options

    def generate(self, pod, container):
        return to_internal_selinux_options(self.options.selinux_options)

    def validate(self, fld_path, pod, container, options):
        base = fld_path if fld_path is not None else Path()
        if options is None:
            return [required(fld_path, "")]

        want = self.options.selinux_options
        errors = []
        if not equal_levels(want.level, options.level):
            errors.append(invalid(base.child("level"), options.level, f"must be {want.level}"))
        if options.role != want.role:
            errors.append(invalid(base.child("role"), options.role, f"must be {want.role}"))
        if options.type != want.type:
            errors.append(invalid(base.child("type"), options.type, f"must be {want.type}"))
        if options.user != want.user:
            errors.append(invalid(base.child("user"), options.user, f"must be {want.user}"))
        return errors


class RunAsAny(SELinuxStrategy):
    """Allows any SELinux options and generates none."""

    def __init__(self, options: Optional[SELinuxContextStrategyOptions] = None) -> None:
        self.options = options

    def generate(self, pod, container):
        return None

    def validate(self, fld_path, pod, container, options):
        return []