# scckit

scckit works with security context constraints (SCCs) for pods. It can:

- decide whether a user may use a constraint;
- fill in a pod's missing security settings from a constraint;
- check that a pod and its containers stay within that constraint.

The package has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests, install the test extra and then run pytest:

```
pip install ".[test]"
pytest
```

## Modules

- `scckit.api`: data classes for the objects the package works on.
  - Pods: `Pod`, `PodSpec`, `Container`, `ContainerPort`.
  - Security contexts: `PodSecurityContext`, `SecurityContext`,
    `SELinuxOptions`, `SeccompProfile`, `Capabilities`, `Sysctl`.
  - Other objects: `Namespace`, `UserInfo`.
  - Constraints: `SecurityContextConstraints` and its strategy option classes.
  - `Pod.all_containers(fld_path)` yields every init, regular and ephemeral
    container together with its field path.
  - The module also defines the annotation keys and the strategy type names.
- `scckit.field`: types for reporting validation problems.
  - `Path` is an immutable field path, built with `child`, `index` and `key`.
  - `FieldError` is one validation problem. Its `type` is an `ErrorType`.
  - The helpers `invalid`, `required` and `forbidden` build a `FieldError`.
- `scckit.selinux`: SELinux strategies.
  - `MustRunAs` requires the exact SELinux options configured on the
    constraint. It raises `ValueError` when it is given no options.
  - `RunAsAny` allows any options and generates none.
  - `equal_levels` treats two levels as equal when only the order of their
    categories differs.
- `scckit.seccomp`: seccomp profiles.
  - `SeccompStrategy` generates and validates profiles from a list of allowed
    profiles.
  - In that list, `*` allows any profile.
  - `docker/default` and `runtime/default` are accepted in place of each other.
- `scckit.sysctl`: sysctl checks.
  - `MustMatchPatterns` validates a pod's sysctls against a safe allowlist,
    allowed unsafe patterns and forbidden patterns. A pattern that ends in `*`
    matches any sysctl with that prefix.
  - `safe_sysctl_allowlist()` returns the default safe list.
- `scckit.accessors`: wrappers that read and write pod, container and
  effective container security contexts.
  - A wrapper accepts a context that is `None` and creates one only when a
    value is stored.
  - The effective container wrapper falls back to the pod for the SELinux
    options and for the user, group and non-root settings.
- `scckit.interfaces`: the interface and the factory functions.
  - `SecurityContextConstraintsProvider` is the abstract provider interface.
  - `seccomp_field_for_annotation` converts a seccomp annotation value to a
    profile field.
  - `create_selinux_strategy`, `create_seccomp_strategy` and
    `create_sysctls_strategy` build strategies.
- `scckit.provider`: `SimpleProvider` implements the provider for one
  constraint.
  - It creates pod and container security contexts and validates them. The
    checks cover user, SELinux, groups, capabilities, seccomp, sysctls, host
    namespaces and ports, read-only root filesystem, and privilege escalation.
  - It raises `ValueError` when the constraint is `None` or names a strategy
    type it does not recognise.
- `scckit.matcher`: applying constraints and reading namespace annotations.
  - `constraint_applies_to` tells whether a user may use a constraint. The
    user may be listed by name, belong to a listed group, or be granted use
    by an optional `Authorizer`. An authorizer that raises counts as a denial.
  - `assign_security_context` sets the security context of the pod and of
    every container, then returns the validation errors as a list of
    `FieldError`.
  - `parse_block` and `parse_supplemental_group_annotation` parse id blocks
    written as `start/size` or `start-end`.
  - The `get_preallocated_*` functions read the uid range, MCS level, fs group
    and supplemental groups from a `Namespace`'s annotations.
  - The `requires_preallocated_*` functions tell whether a constraint needs
    those values.
  - Parse and lookup failures raise `ValueError`.

## Example

```python
from scckit.api import (
    Container, FSGroupStrategyOptions, IDRange, Pod, PodSecurityContext, PodSpec,
    RunAsUserStrategyOptions, SecurityContext, SecurityContextConstraints,
    SELinuxContextStrategyOptions, SupplementalGroupsStrategyOptions,
)
from scckit.matcher import assign_security_context
from scckit.provider import SimpleProvider

scc = SecurityContextConstraints(
    name="restricted",
    run_as_user=RunAsUserStrategyOptions(type="MustRunAs", uid=9999),
    selinux_context=SELinuxContextStrategyOptions(type="RunAsAny"),
    fs_group=FSGroupStrategyOptions(type="MustRunAs", ranges=[IDRange(1, 1)]),
    supplemental_groups=SupplementalGroupsStrategyOptions(type="RunAsAny"),
)
provider = SimpleProvider(scc)

pod = Pod(spec=PodSpec(
    security_context=PodSecurityContext(),
    containers=[Container(security_context=SecurityContext(privileged=True))],
))
for error in assign_security_context(provider, pod, None):
    print(error)
```

In this example the container asks to run privileged, and the constraint does
not allow that. The list that `assign_security_context` returns therefore
contains an error at `spec.containers[0].privileged`.

Checking whether a user may use a constraint:

```python
from scckit.api import UserInfo
from scckit.matcher import constraint_applies_to

constraint_applies_to("restricted", ["alice"], [], UserInfo(name="alice"), "default", None)
# True
```

Parsing a pre-allocated group annotation:

```python
from scckit.matcher import parse_supplemental_group_annotation

parse_supplemental_group_annotation("1/5,6/5")
# [Block(start=1, end=5), Block(start=6, end=10)]
```

## What the package does not do

scckit is a library of checks. It does not do the following:

- It does not list or store constraints, and it does not sort them by
  priority.
- It does not build a provider from a constraint whose ranges or level are
  left unset. The `get_preallocated_*` functions return the namespace's
  values, and the caller must put them on the constraint before creating a
  `SimpleProvider`.
- It does not run as a server or an admission hook, and it has no command of
  its own.
- Authorization decisions come only from an `Authorizer` that you implement.