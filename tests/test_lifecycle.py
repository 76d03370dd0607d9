import pytest

from sitecache.core.lifecycle import Lifecycle, WorkerState
from sitecache.exceptions import LifecycleError


def test_happy_path_records_every_change():
    changes = []
    lifecycle = Lifecycle("1", on_change=lambda old, new: changes.append(new))
    for state in (
        WorkerState.INSTALLING,
        WorkerState.INSTALLED,
        WorkerState.ACTIVATING,
        WorkerState.ACTIVATED,
        WorkerState.REDUNDANT,
    ):
        lifecycle.transition(state)

    assert lifecycle.state is WorkerState.REDUNDANT
    assert changes[-1] is WorkerState.REDUNDANT
    assert len(changes) == 5


@pytest.mark.parametrize(
    "path, illegal",
    [
        ((), WorkerState.ACTIVATED),
        ((WorkerState.INSTALLING,), WorkerState.ACTIVATING),
        ((WorkerState.INSTALLING, WorkerState.FAILED), WorkerState.INSTALLED),
        ((WorkerState.INSTALLING, WorkerState.INSTALLED), WorkerState.FAILED),
    ],
)
def test_illegal_transitions_raise(path, illegal):
    lifecycle = Lifecycle("1")
    for state in path:
        lifecycle.transition(state)
    assert not lifecycle.can_transition(illegal)
    with pytest.raises(LifecycleError):
        lifecycle.transition(illegal)


def test_failed_and_redundant_are_terminal():
    failed = Lifecycle("1")
    failed.transition(WorkerState.INSTALLING)
    failed.transition(WorkerState.FAILED)
    assert not any(failed.can_transition(s) for s in WorkerState)

    replaced = Lifecycle("2")
    replaced.transition(WorkerState.INSTALLING)
    replaced.transition(WorkerState.INSTALLED)
    replaced.transition(WorkerState.REDUNDANT)
    assert not any(replaced.can_transition(s) for s in WorkerState)


def test_resume_only_from_parsed():
    lifecycle = Lifecycle("1")
    lifecycle.resume_activated()
    assert lifecycle.state is WorkerState.ACTIVATED

    installing = Lifecycle("2")
    installing.transition(WorkerState.INSTALLING)
    with pytest.raises(LifecycleError):
        installing.resume_activated()
