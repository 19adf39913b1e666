import pytest

from effectiveness_audit.events import EventChannel, progress_channel
from effectiveness_audit.models import Criterion, Pace, Phase
from effectiveness_audit.progress import (
    COMPLETE_MESSAGE,
    INITIAL_MESSAGE,
    INSIGHTS_STEP,
    STEPS_PER_ENTITY,
    ProgressTracker,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def finish_client(tracker):
    tracker.complete_data_collection("client")
    for criterion in Criterion:
        tracker.complete_criterion(criterion, "client")


def test_steps_per_entity():
    assert STEPS_PER_ENTITY == 13


def test_initial_state():
    tracker = ProgressTracker(clock=FakeClock())
    state = tracker.get_state()
    assert state.overall_percent == 0
    assert state.phase is Phase.INITIALIZING
    assert state.message == INITIAL_MESSAGE


def test_client_with_two_competitors_is_a_third_done_after_client():
    tracker = ProgressTracker(clock=FakeClock())
    tracker.set_total_steps(1, 2)
    tracker.start_client("acme.example")
    finish_client(tracker)

    state = tracker.get_state()
    assert state.steps_total == 40
    assert state.steps_completed == 13
    assert state.overall_percent == 33
    assert state.phase is Phase.CLIENT


def test_repeated_step_is_ignored():
    tracker = ProgressTracker(clock=FakeClock())
    tracker.set_total_steps(1, 0)
    assert tracker.mark_step_complete("client_ux") is True
    assert tracker.mark_step_complete("client_ux") is False
    assert tracker.steps_completed == 1


def test_unknown_step_ids_are_rejected():
    tracker = ProgressTracker(clock=FakeClock())
    tracker.set_total_steps(1, 1)
    assert tracker.mark_step_complete("client_nonsense") is False
    assert tracker.mark_step_complete("competitor_5_ux") is False
    assert tracker.mark_step_complete("bogus") is False
    assert tracker.steps_completed == 0


def test_negative_counts_raise():
    with pytest.raises(ValueError):
        ProgressTracker().set_total_steps(-1, 0)


def test_percent_never_decreases_when_totals_grow():
    tracker = ProgressTracker(clock=FakeClock())
    tracker.set_total_steps(1, 0)
    finish_client(tracker)
    before = tracker.get_state().overall_percent

    tracker.set_total_steps(1, 3)
    assert tracker.get_state().overall_percent == before


def test_phase_never_moves_backwards():
    tracker = ProgressTracker(clock=FakeClock())
    tracker.set_total_steps(1, 1)
    tracker.start_competitor("rival.example", 0)
    tracker.start_client("acme.example")
    assert tracker.get_state().phase is Phase.COMPETITORS

    tracker.mark_step_complete("client_seo")
    assert tracker.get_state().phase is Phase.COMPETITORS


def test_skip_entity_counts_remaining_steps():
    tracker = ProgressTracker(clock=FakeClock())
    tracker.set_total_steps(1, 1)
    finish_client(tracker)
    tracker.mark_step_complete("competitor_0_initial_html")
    tracker.skip_entity("competitor_0")

    state = tracker.get_state()
    assert state.steps_completed == 26
    assert state.competitors_complete == 1


def test_complete_forces_hundred_percent_and_is_final():
    tracker = ProgressTracker(clock=FakeClock())
    tracker.set_total_steps(1, 0)
    tracker.complete()

    state = tracker.get_state()
    assert state.overall_percent == 100
    assert state.phase is Phase.COMPLETED
    assert state.time_remaining_ms == 0
    assert state.message == COMPLETE_MESSAGE
    assert tracker.mark_step_complete(INSIGHTS_STEP) is False


def test_all_steps_reach_hundred_percent():
    tracker = ProgressTracker(clock=FakeClock())
    tracker.set_total_steps(1, 0)
    finish_client(tracker)
    tracker.start_insights()
    tracker.mark_step_complete(INSIGHTS_STEP)

    state = tracker.get_state()
    assert state.overall_percent == 100
    assert state.phase is Phase.INSIGHTS


def test_pace_and_remaining_message_after_thirty_seconds():
    clock = FakeClock()
    tracker = ProgressTracker(clock=clock)
    tracker.set_total_steps(1, 0)
    tracker.start_client("acme.example")
    tracker.mark_step_complete("client_initial_html")

    clock.now += 40
    state = tracker.get_state()
    assert state.time_elapsed_ms == 40000
    assert state.pace is Pace.SLOWER
    assert "remaining" in state.message
    assert state.message.startswith("Analyzing your website")


def test_fast_progress_is_reported_as_faster():
    clock = FakeClock()
    tracker = ProgressTracker(clock=clock)
    tracker.set_total_steps(1, 0)
    finish_client(tracker)
    clock.now += 1
    assert tracker.get_state().pace is Pace.FASTER


def test_changes_are_broadcast_on_the_progress_channel():
    hub = EventChannel()
    subscription = hub.subscribe(progress_channel("run-1"))
    tracker = ProgressTracker("run-1", broadcaster=hub, clock=FakeClock())
    tracker.set_total_steps(1, 0)
    tracker.mark_step_complete("client_ux")
    tracker.complete()

    events = subscription.pending()
    assert [e.type for e in events] == ["progress", "progress", "complete"]
    assert events[-1].payload["state"]["overall_percent"] == 100
    assert events[1].payload["state"]["steps_completed"] == 1


def test_broadcaster_failures_do_not_escape():
    class Broken:
        def publish(self, channel, payload):
            raise RuntimeError("socket closed")

    tracker = ProgressTracker("run-1", broadcaster=Broken(), clock=FakeClock())
    tracker.set_total_steps(1, 0)
    assert tracker.mark_step_complete("client_ux") is True
