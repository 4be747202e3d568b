import pytest

from scckit.api import (
    FS_GROUP_MUST_RUN_AS,
    FS_GROUP_RUN_AS_ANY,
    MCS_ANNOTATION,
    RUN_AS_USER_MUST_RUN_AS,
    RUN_AS_USER_MUST_RUN_AS_NON_ROOT,
    RUN_AS_USER_MUST_RUN_AS_RANGE,
    RUN_AS_USER_RUN_AS_ANY,
    SELINUX_MUST_RUN_AS,
    SELINUX_RUN_AS_ANY,
    SUPPLEMENTAL_GROUPS_ANNOTATION,
    SUPPLEMENTAL_GROUPS_MUST_RUN_AS,
    SUPPLEMENTAL_GROUPS_RUN_AS_ANY,
    UID_RANGE_ANNOTATION,
    Container,
    FSGroupStrategyOptions,
    IDRange,
    Namespace,
    Pod,
    PodSecurityContext,
    PodSpec,
    RunAsUserStrategyOptions,
    SecurityContext,
    SecurityContextConstraints,
    SELinuxContextStrategyOptions,
    SELinuxOptions,
    SupplementalGroupsStrategyOptions,
    UserInfo,
)
from scckit.field import Path, invalid
from scckit.interfaces import SecurityContextConstraintsProvider
from scckit.matcher import (
    Authorizer,
    Block,
    assign_security_context,
    constraint_applies_to,
    get_preallocated_fs_group,
    get_preallocated_level,
    get_preallocated_supplemental_groups,
    get_preallocated_uid_range,
    parse_block,
    parse_supplemental_group_annotation,
    requires_preallocated_fs_group,
    requires_preallocated_selinux_level,
    requires_preallocated_supplemental_groups,
    requires_preallocated_uid_range,
)


class _FakeProvider(SecurityContextConstraintsProvider):
    """Denies privileged containers and assigns uid 9999."""

    def __init__(self, fail_pod=False, fail_container=False):
        self._scc = SecurityContextConstraints(name="test scc")
        self.fail_pod = fail_pod
        self.fail_container = fail_container

    @property
    def scc(self):
        return self._scc

    def create_pod_security_context(self, pod):
        if self.fail_pod:
            raise ValueError("cannot create pod context")
        sc = pod.spec.security_context or PodSecurityContext()
        sc.fs_group = 1
        annotations = dict(pod.annotations or {})
        annotations["generated"] = "yes"
        return sc, annotations

    def create_container_security_context(self, pod, container):
        if self.fail_container:
            raise ValueError("cannot create container context")
        sc = container.security_context or SecurityContext()
        sc.run_as_user = 9999
        return sc

    def validate_pod_security_context(self, pod, fld_path):
        sc = pod.spec.security_context
        if sc is None or sc.fs_group != 1:
            return [invalid(fld_path.child("fsGroup"), None, "bad fs group")]
        return []

    def validate_container_security_context(self, pod, container, fld_path):
        sc = container.security_context
        if sc is not None and sc.privileged:
            return [invalid(fld_path.child("privileged"), True, "Privileged containers are not allowed")]
        return []


def _container(priv):
    return Container(security_context=SecurityContext(privileged=priv))


def _pod(containers=(), init=(), ephemeral=()):
    return Pod(
        spec=PodSpec(
            security_context=PodSecurityContext(),
            containers=list(containers),
            init_containers=list(init),
            ephemeral_containers=list(ephemeral),
        )
    )


ASSIGN_CASES = {
    "pod and container SC is not changed when invalid": (lambda: _pod([_container(True)]), False),
    "must validate all containers": (lambda: _pod([_container(False), _container(True)]), False),
    "pod validates": (lambda: _pod([_container(False)]), True),
    "init containers are being checked - fail": (
        lambda: _pod([_container(False)], init=[_container(False), _container(True)]),
        False,
    ),
    "init containers are being checked - pass": (
        lambda: _pod([_container(False)], init=[_container(False), _container(False)]),
        True,
    ),
    "ephemeral containers are being checked - fail": (
        lambda: _pod([_container(False)], ephemeral=[_container(False), _container(True)]),
        False,
    ),
    "ephemeral containers are being checked - pass": (
        lambda: _pod([_container(False)], ephemeral=[_container(False), _container(False)]),
        True,
    ),
}


@pytest.mark.parametrize("swap", [False, True])
@pytest.mark.parametrize("name", sorted(ASSIGN_CASES))
def test_assign_security_context(name, swap):
    make_pod, should_validate = ASSIGN_CASES[name]
    pod = make_pod()
    if swap:
        pod.spec.containers, pod.spec.init_containers = pod.spec.init_containers, pod.spec.containers
    errors = assign_security_context(_FakeProvider(), pod, None)
    assert (len(errors) == 0) == should_validate


def test_assign_security_context_sets_values():
    pod = _pod([_container(False)], init=[Container()])
    errors = assign_security_context(_FakeProvider(), pod, None)
    assert errors == []
    assert pod.spec.security_context.fs_group == 1
    assert pod.annotations == {"generated": "yes"}
    assert pod.spec.containers[0].security_context.run_as_user == 9999
    assert pod.spec.init_containers[0].security_context.run_as_user == 9999


def test_assign_security_context_error_paths():
    pod = _pod([_container(False), _container(True)])
    errors = assign_security_context(_FakeProvider(), pod, None)
    assert [e.field for e in errors] == ["containers[1].privileged"]


def test_assign_security_context_pod_creation_failure():
    pod = _pod([_container(False)])
    errors = assign_security_context(_FakeProvider(fail_pod=True), pod, Path("root"))
    assert errors[0].field == "root.spec.securityContext"
    assert "cannot create pod context" in errors[0].detail
    assert pod.spec.security_context is None
    assert pod.annotations is None


def test_assign_security_context_container_creation_failure():
    pod = _pod([_container(False)])
    errors = assign_security_context(_FakeProvider(fail_container=True), pod, None)
    assert len(errors) == 1
    assert errors[0].field == "containers[0]"
    assert errors[0].detail == "cannot create container context"


@pytest.mark.parametrize(
    "opts, requires",
    [
        (RunAsUserStrategyOptions(type=RUN_AS_USER_MUST_RUN_AS), False),
        (RunAsUserStrategyOptions(type=RUN_AS_USER_RUN_AS_ANY), False),
        (RunAsUserStrategyOptions(type=RUN_AS_USER_MUST_RUN_AS_NON_ROOT), False),
        (RunAsUserStrategyOptions(type=RUN_AS_USER_MUST_RUN_AS_RANGE), True),
        (
            RunAsUserStrategyOptions(type=RUN_AS_USER_MUST_RUN_AS_RANGE, uid_range_min=1, uid_range_max=1),
            False,
        ),
    ],
)
def test_requires_preallocated_uid_range(opts, requires):
    assert requires_preallocated_uid_range(SecurityContextConstraints(run_as_user=opts)) is requires


@pytest.mark.parametrize(
    "opts, requires",
    [
        (SELinuxContextStrategyOptions(type=SELINUX_MUST_RUN_AS), True),
        (
            SELinuxContextStrategyOptions(
                type=SELINUX_MUST_RUN_AS, selinux_options=SELinuxOptions(level="foo")
            ),
            False,
        ),
        (SELinuxContextStrategyOptions(type=SELINUX_RUN_AS_ANY), False),
    ],
)
def test_requires_preallocated_selinux_level(opts, requires):
    assert requires_preallocated_selinux_level(SecurityContextConstraints(selinux_context=opts)) is requires


@pytest.mark.parametrize(
    "opts, requires",
    [
        (SupplementalGroupsStrategyOptions(type=SUPPLEMENTAL_GROUPS_MUST_RUN_AS), True),
        (
            SupplementalGroupsStrategyOptions(
                type=SUPPLEMENTAL_GROUPS_MUST_RUN_AS, ranges=[IDRange(1, 1)]
            ),
            False,
        ),
        (SupplementalGroupsStrategyOptions(type=SUPPLEMENTAL_GROUPS_RUN_AS_ANY), False),
    ],
)
def test_requires_preallocated_supplemental_groups(opts, requires):
    scc = SecurityContextConstraints(supplemental_groups=opts)
    assert requires_preallocated_supplemental_groups(scc) is requires


@pytest.mark.parametrize(
    "opts, requires",
    [
        (FSGroupStrategyOptions(type=FS_GROUP_MUST_RUN_AS), True),
        (FSGroupStrategyOptions(type=FS_GROUP_MUST_RUN_AS, ranges=[IDRange(1, 1)]), False),
        (FSGroupStrategyOptions(type=FS_GROUP_RUN_AS_ANY), False),
    ],
)
def test_requires_preallocated_fs_group(opts, requires):
    assert requires_preallocated_fs_group(SecurityContextConstraints(fs_group=opts)) is requires


@pytest.mark.parametrize(
    "groups, expected",
    [
        ("1/5", [Block(1, 5)]),
        ("1-5", [Block(1, 5)]),
        ("1/5,6/5,11/5", [Block(1, 5), Block(6, 10), Block(11, 15)]),
        ("1-5,6-10,11-15", [Block(1, 5), Block(6, 10), Block(11, 15)]),
    ],
)
def test_parse_supplemental_group_annotation(groups, expected):
    assert parse_supplemental_group_annotation(groups) == expected


def test_parse_supplemental_group_annotation_no_blocks():
    with pytest.raises(ValueError):
        parse_supplemental_group_annotation("")


@pytest.mark.parametrize("text", ["foo", "5-1", "1/0", "1/", "-5", "1/5/6", "99999999999-99999999999"])
def test_parse_block_rejects(text):
    with pytest.raises(ValueError):
        parse_block(text)


def test_parse_block_size():
    block = parse_block("1000/10000")
    assert block == Block(1000, 10999)
    assert block.size == 10000


def _ns(**annotations):
    return Namespace(name="ns", annotations=dict(annotations))


@pytest.mark.parametrize(
    "ns, expected",
    [
        (_ns(**{UID_RANGE_ANNOTATION: "1/5"}), [IDRange(1, 1)]),
        (_ns(**{SUPPLEMENTAL_GROUPS_ANNOTATION: "1/5"}), [IDRange(1, 1)]),
    ],
)
def test_get_preallocated_fs_group(ns, expected):
    assert get_preallocated_fs_group(ns) == expected


@pytest.mark.parametrize(
    "ns, expected",
    [
        (_ns(**{UID_RANGE_ANNOTATION: "1/5"}), [IDRange(1, 5)]),
        (_ns(**{SUPPLEMENTAL_GROUPS_ANNOTATION: "1/5"}), [IDRange(1, 5)]),
        (_ns(**{SUPPLEMENTAL_GROUPS_ANNOTATION: "1/5,10-12"}), [IDRange(1, 5), IDRange(10, 12)]),
    ],
)
def test_get_preallocated_supplemental_groups(ns, expected):
    assert get_preallocated_supplemental_groups(ns) == expected


@pytest.mark.parametrize(
    "ns",
    [
        _ns(),
        _ns(**{SUPPLEMENTAL_GROUPS_ANNOTATION: ""}),
        _ns(**{SUPPLEMENTAL_GROUPS_ANNOTATION: "foo"}),
    ],
)
@pytest.mark.parametrize("func", [get_preallocated_fs_group, get_preallocated_supplemental_groups])
def test_get_preallocated_groups_failures(func, ns):
    with pytest.raises(ValueError):
        func(ns)


def test_get_preallocated_uid_range():
    assert get_preallocated_uid_range(_ns(**{UID_RANGE_ANNOTATION: "1000/10000"})) == (1000, 10999)


@pytest.mark.parametrize("ns", [_ns(), _ns(**{UID_RANGE_ANNOTATION: ""}), _ns(**{UID_RANGE_ANNOTATION: "x"})])
def test_get_preallocated_uid_range_failures(ns):
    with pytest.raises(ValueError):
        get_preallocated_uid_range(ns)


def test_get_preallocated_level():
    assert get_preallocated_level(_ns(**{MCS_ANNOTATION: "s0:c1,c0"})) == "s0:c1,c0"


@pytest.mark.parametrize("ns", [_ns(), _ns(**{MCS_ANNOTATION: ""})])
def test_get_preallocated_level_failures(ns):
    with pytest.raises(ValueError):
        get_preallocated_level(ns)


class _RecordingAuthorizer(Authorizer):
    def __init__(self, allow=False, error=False):
        self.allow = allow
        self.error = error
        self.calls = []

    def authorize(self, user, verb, namespace, name, api_group, resource):
        self.calls.append((user.name, verb, namespace, name, api_group, resource))
        if self.error:
            raise RuntimeError("no decision")
        return self.allow


def test_constraint_applies_to_user():
    user = UserInfo(name="alice")
    assert constraint_applies_to("scc", ["alice"], [], user, "ns", None) is True


def test_constraint_applies_to_group():
    user = UserInfo(name="bob", groups=["devs", "ops"])
    assert constraint_applies_to("scc", ["alice"], ["ops"], user, "ns", None) is True


def test_constraint_does_not_apply_without_authorizer():
    user = UserInfo(name="bob", groups=["devs"])
    assert constraint_applies_to("scc", ["alice"], ["ops"], user, "ns", None) is False


def test_constraint_applies_through_authorizer():
    authorizer = _RecordingAuthorizer(allow=True)
    user = UserInfo(name="bob")
    assert constraint_applies_to("restricted", [], [], user, "project", authorizer) is True
    assert authorizer.calls == [
        ("bob", "use", "project", "restricted", "security.openshift.io", "securitycontextconstraints")
    ]


def test_constraint_denied_by_authorizer():
    authorizer = _RecordingAuthorizer(allow=False)
    assert constraint_applies_to("scc", [], [], UserInfo(name="bob"), "ns", authorizer) is False


def test_constraint_authorizer_error_denies():
    authorizer = _RecordingAuthorizer(allow=True, error=True)
    assert constraint_applies_to("scc", [], [], UserInfo(name="bob"), "ns", authorizer) is False
    assert len(authorizer.calls) == 1


def test_constraint_direct_match_skips_authorizer():
    authorizer = _RecordingAuthorizer(allow=False)
    assert constraint_applies_to("scc", ["bob"], [], UserInfo(name="bob"), "ns", authorizer) is True
    assert authorizer.calls == []