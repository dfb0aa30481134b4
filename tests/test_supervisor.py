"""Single reconcile passes, run synchronously without the loop thread."""
from dcm import db
from dcm.docker_ops import RuntimeClientError
from dcm.reconcile import Action

from fakes import make_def


def test_absent_container_is_created_and_started(supervisor_factory, runtime):
    sup = supervisor_factory()

    assert sup.reconcile() is Action.CREATE

    assert runtime.ops() == ["create", "start"]
    st = runtime.containers["web"]
    assert st.running is True
    assert st.version == "v1"
    assert st.labels["dcm.managed"] == "true"


def test_second_pass_is_a_noop(supervisor_factory, runtime):
    sup = supervisor_factory()
    sup.reconcile()

    assert sup.reconcile() is Action.NOOP

    assert runtime.count("create") == 1
    assert runtime.count("start") == 1
    assert sup.passes == 2
    assert sup.last_action == "noop"


def test_stopped_container_with_current_version_is_started(supervisor_factory, runtime):
    st = runtime.put("web", "v1", running=False)
    sup = supervisor_factory()

    assert sup.reconcile() is Action.START

    assert runtime.calls[-1] == ("start", st.id)
    assert runtime.ops() == ["start"]
    assert runtime.containers["web"].running is True


def test_version_change_replaces_container_in_order(supervisor_factory, runtime, provider):
    sup = supervisor_factory()
    sup.reconcile()
    provider.set(make_def("web", "v2", image="nginx:1.28"))

    assert sup.reconcile() is Action.REPLACE

    assert runtime.ops()[2:] == ["stop", "remove", "create", "start"]
    st = runtime.containers["web"]
    assert st.running is True
    assert st.version == "v2"
    assert sup.definition.version == "v2"
    assert sup.definition.image == "nginx:1.28"


def test_version_change_on_stopped_container_skips_stop(supervisor_factory, runtime, provider):
    runtime.put("web", "v1", running=False)
    provider.set(make_def("web", "v2"))
    sup = supervisor_factory()

    assert sup.reconcile() is Action.REPLACE

    assert runtime.ops() == ["remove", "create", "start"]


def test_created_container_uses_current_definition(supervisor_factory, runtime, provider):
    # Held definition is stale; the created container follows the provider.
    provider.set(make_def("web", "v3"))
    sup = supervisor_factory(definition=make_def("web", "v1"))

    sup.reconcile()

    assert runtime.containers["web"].version == "v3"
    assert sup.definition.version == "v3"


def test_removed_definition_tears_down_and_closes(supervisor_factory, runtime, provider):
    sup = supervisor_factory()
    sup.reconcile()
    provider.drop("web")

    assert sup.reconcile() is Action.REMOVE

    assert runtime.ops()[2:] == ["stop", "remove"]
    assert "web" not in runtime.containers
    assert sup.closed
    assert sup.wait_closed(0) is True


def test_removed_definition_with_stopped_container_skips_stop(supervisor_factory, runtime, provider):
    runtime.put("web", "v1", running=False)
    provider.drop("web")
    sup = supervisor_factory()

    assert sup.reconcile() is Action.REMOVE

    assert runtime.ops() == ["remove"]


def test_nothing_desired_and_nothing_running_makes_no_engine_calls(supervisor_factory, runtime, provider):
    provider.drop("web")
    sup = supervisor_factory()

    assert sup.reconcile() is Action.NOOP

    assert runtime.ops() == []
    assert not sup.closed


def test_definition_that_comes_back_is_created_by_the_same_supervisor(supervisor_factory, runtime, provider):
    provider.drop("web")
    sup = supervisor_factory()
    assert sup.reconcile() is Action.NOOP

    provider.set(make_def(version="v2"))

    assert sup.reconcile() is Action.CREATE
    assert runtime.ops() == ["create", "start"]
    assert runtime.containers["web"].labels["dcm.version"] == "v2"
    assert sup.definition.version == "v2"


def test_transient_inspect_error_aborts_pass(supervisor_factory, runtime):
    runtime.fail["inspect"] = RuntimeClientError("cannot inspect container: connection refused")
    sup = supervisor_factory()

    assert sup.reconcile() is None

    assert runtime.ops() == []
    assert "connection refused" in sup.last_error
    assert not sup.closed

    del runtime.fail["inspect"]
    assert sup.reconcile() is Action.CREATE
    assert sup.last_error is None


def test_failed_create_is_retried_on_next_pass(supervisor_factory, runtime):
    runtime.fail["create"] = RuntimeClientError("cannot create container: pull access denied")
    sup = supervisor_factory()

    assert sup.reconcile() is None
    assert runtime.ops() == ["create"]

    del runtime.fail["create"]
    assert sup.reconcile() is Action.CREATE
    assert runtime.containers["web"].running is True


def test_failed_remove_keeps_old_definition_and_recovers(supervisor_factory, runtime, provider):
    sup = supervisor_factory()
    sup.reconcile()
    provider.set(make_def("web", "v2"))
    runtime.fail["remove"] = RuntimeClientError("cannot remove container: device busy")

    assert sup.reconcile() is None

    # Stopped but not removed, still labelled with the old version.
    st = runtime.containers["web"]
    assert st.running is False
    assert st.version == "v1"
    assert sup.definition.version == "v1"

    del runtime.fail["remove"]
    assert sup.reconcile() is Action.REPLACE
    assert runtime.ops()[-3:] == ["remove", "create", "start"]
    assert runtime.containers["web"].version == "v2"
    assert runtime.containers["web"].running is True


def test_failed_create_after_replace_recreates_next_pass(supervisor_factory, runtime, provider):
    sup = supervisor_factory()
    sup.reconcile()
    provider.set(make_def("web", "v2"))
    runtime.fail["create"] = RuntimeClientError("cannot create container: no space left")

    assert sup.reconcile() is None
    assert "web" not in runtime.containers

    del runtime.fail["create"]
    assert sup.reconcile() is Action.CREATE
    assert runtime.containers["web"].version == "v2"


def test_pass_writes_events_prefixed_by_container(supervisor_factory):
    sup = supervisor_factory()
    sup.reconcile()

    events = db.latest_events(container="web")
    messages = [e["message"] for e in reversed(events)]
    assert messages[0] == "Container not found, creating new container"
    assert "Starting new container" in messages
    assert all(e["container"] == "web" for e in events)
    assert "[web] Starting new container" in db.format_event(events[0])


def test_status_reflects_last_pass(supervisor_factory, runtime):
    sup = supervisor_factory()
    sup.reconcile()

    st = sup.status()
    assert st.name == "web"
    assert st.version == "v1"
    assert st.image == "nginx:1.27"
    assert st.state == "active"
    assert st.passes == 1
    assert st.last_action == "create"
    assert st.last_pass_at is not None
