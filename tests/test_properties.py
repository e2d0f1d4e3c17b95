from hypothesis import given
from hypothesis import strategies as st

from conftest import FakeClock, FakeTarget, change
from git_autosync.coordinator import Coordinator, SyncState

# Strategy: an interleaving of filesystem events, clock advances, pull ticks
# and timer polls, as the event loop could dispatch them.
actions_strategy = st.lists(
    st.one_of(
        st.just(("event", 0.0)),
        st.just(("tick", 0.0)),
        st.just(("poll", 0.0)),
        st.tuples(st.just("advance"), st.floats(min_value=0.0, max_value=20.0)),
    ),
    max_size=60,
)


def _build(batch_interval: float = 5.0) -> tuple[Coordinator, FakeTarget, FakeClock]:
    clock = FakeClock()
    target = FakeTarget()
    coord = Coordinator(target, batch_interval, clock=clock)
    target.coordinator = coord
    return coord, target, clock


@given(
    actions=actions_strategy,
    nested=st.lists(st.sampled_from(["event", "tick", "poll"]), max_size=3),
    blocked=st.booleans(),
    pull_ok=st.booleans(),
)
def test_commit_and_pull_never_overlap(
    actions: list[tuple[str, float]],
    nested: list[str],
    blocked: bool,
    pull_ok: bool,
) -> None:
    """
    Property: Whatever order events, ticks and timer expiries arrive in
    (including re-entrantly from inside a running cycle), at most one cycle
    runs at a time, and each cycle observes its own state.
    """
    coord, target, clock = _build()
    target.pull_ok = pull_ok

    def reenter() -> None:
        for action in nested:
            if action == "event":
                coord.submit_change(change())
            elif action == "tick":
                coord.tick()
            else:
                coord.poll()

    target.on_commit = reenter
    target.on_pull = reenter

    for i, (action, amount) in enumerate(actions):
        target.blocked = blocked and i % 7 < 3
        if action == "event":
            coord.submit_change(change())
        elif action == "tick":
            coord.tick()
        elif action == "poll":
            coord.poll()
        else:
            clock.advance(amount)

        assert target.active == 0
        assert coord.current_state not in (SyncState.COMMITTING, SyncState.PULLING)

    assert target.max_active <= 1
    assert len(target.states) == target.commits + target.pulls
    assert all(
        s in (SyncState.COMMITTING, SyncState.PULLING) for s in target.states
    )


@given(
    gaps=st.lists(st.floats(min_value=0.0, max_value=4.99), min_size=1, max_size=30)
)
def test_burst_coalesces_into_one_commit(gaps: list[float]) -> None:
    """
    Property: Events spaced closer than the batch window produce exactly one
    commit, fired one window after the last event.
    """
    coord, target, clock = _build(batch_interval=5.0)

    for gap in gaps:
        clock.advance(gap)
        coord.submit_change(change())
        coord.poll()

    last_event = clock.now
    assert target.commits == 0
    assert coord.next_deadline() == last_event + 5.0

    clock.now = last_event + 5.0
    coord.poll()
    clock.advance(100.0)
    coord.poll()

    assert target.commits == 1
    assert coord.current_state is SyncState.IDLE


@given(events=st.integers(min_value=1, max_value=20))
def test_changes_during_pull_are_never_dropped(events: int) -> None:
    """
    Property: A change that arrives while a pull runs always ends up committed.
    """
    coord, target, clock = _build()

    def edit() -> None:
        target.on_pull = None
        for _ in range(events):
            coord.submit_change(change())

    target.on_pull = edit
    coord.tick()
    assert coord.current_state is SyncState.PENDING

    clock.advance(5.0)
    coord.poll()

    assert target.commits == 1
