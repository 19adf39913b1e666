"""Time-aware progress tracking for a single scoring run.

A tracker is created per run and passed down the call chain. It turns
discrete step completions into a percentage, a phase, an ETA and a
human-readable message, and broadcasts a snapshot on every change.

Step ids look like ``client_initial_html``, ``competitor_1_trust`` or
``insights``. Each entity contributes five data collection steps plus one
step per criterion, and the run has a single insights step at the end.
"""

import logging
import math
import re
import time
from typing import Any, Callable

from .events import Broadcaster, progress_channel, safe_publish
from .models import DATA_COLLECTION_STEPS, Criterion, Pace, Phase, ProgressState, round_half_up

logger = logging.getLogger(__name__)


CRITERIA_STEPS = tuple(c.value for c in Criterion)
STEPS_PER_ENTITY = len(DATA_COLLECTION_STEPS) + len(CRITERIA_STEPS)
INSIGHTS_STEP = "insights"

# Observed durations in milliseconds
HISTORICAL_AVERAGES_MS = {
    "screenshot": 8000,
    "tier1_criterion": 800,
    "tier2_criterion": 1500,
    "page_speed": 35000,
    "competitor_total": 45000,
    "insights": 4000,
}
TIER1_CRITERIA = 4
TIER2_CRITERIA = 3

INITIAL_MESSAGE = "Starting analysis (typically 2-3 minutes)"
COMPLETE_MESSAGE = "Analysis complete"

_STEP_RE = re.compile(r"^(client|competitor_(\d+))_(.+)$")


def entity_for_competitor(index: int) -> str:
    return f"competitor_{index}"


class ProgressTracker:
    """Run-scoped progress state machine.

    Phases advance initializing -> client -> competitors -> insights ->
    completed and never move backwards. The percentage never decreases.
    """

    def __init__(
        self,
        run_id: str | None = None,
        broadcaster: Broadcaster | None = None,
        channel: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.run_id = run_id
        self.broadcaster = broadcaster
        self.channel = channel or (progress_channel(run_id) if run_id else None)
        self._clock = clock
        self._start = clock()

        self._completed: set[str] = set()
        self._clients_total = 0
        self._competitors_total = 0
        self._steps_total = 0
        self._competitor_names: dict[int, str] = {}

        self._percent = 0
        self._phase = Phase.INITIALIZING
        self._entity = ""
        self._operation = "Starting analysis"
        self._remaining_ms = 120000
        self._pace = Pace.NORMAL
        self._message = INITIAL_MESSAGE
        self._finished = False

    # -- configuration -----------------------------------------------------

    def set_total_steps(self, client_count: int, competitor_count: int) -> None:
        if client_count < 0 or competitor_count < 0:
            raise ValueError("entity counts must be non-negative")
        if self._finished:
            return
        self._clients_total = client_count
        self._competitors_total = competitor_count
        self._steps_total = (client_count + competitor_count) * STEPS_PER_ENTITY + 1
        logger.info("Progress tracker: total steps set to %d (%d clients, %d competitors)",
                    self._steps_total, client_count, competitor_count)
        self._changed()

    def set_competitor_name(self, index: int, name: str) -> None:
        self._competitor_names[index] = name

    # -- phase hints -------------------------------------------------------

    def start_client(self, name: str) -> None:
        if self._finished:
            return
        self._advance_phase(Phase.CLIENT)
        self._entity = name
        self._operation = "Analyzing your website"
        logger.info("Progress tracker: client analysis started for %s", name)
        self._changed()

    def start_competitor(self, name: str, index: int) -> None:
        if self._finished:
            return
        self._competitor_names.setdefault(index, name)
        self._advance_phase(Phase.COMPETITORS)
        self._entity = name
        self._operation = f"Analyzing competitor {index + 1} of {max(self._competitors_total, index + 1)}"
        logger.info("Progress tracker: competitor %d analysis started for %s", index, name)
        self._changed()

    def start_insights(self) -> None:
        if self._finished:
            return
        self._advance_phase(Phase.INSIGHTS)
        self._operation = "Generating personalized insights"
        logger.info("Progress tracker: insights generation started")
        self._changed()

    # -- step completion ---------------------------------------------------

    def mark_step_complete(self, step_id: str) -> bool:
        """Record a completed step. Returns False for repeats and bad ids."""
        if self._finished or step_id in self._completed:
            return False

        phase = self._phase_for_step(step_id)
        if phase is None:
            logger.warning("Progress tracker: ignoring unknown step id %r", step_id)
            return False

        self._completed.add(step_id)
        self._advance_phase(phase)
        logger.debug("Progress tracker: step %s complete (%d/%d)",
                     step_id, len(self._completed), self._steps_total)
        self._changed()
        return True

    def complete_criterion(self, criterion: Criterion | str, entity: str = "client") -> bool:
        name = criterion.value if isinstance(criterion, Criterion) else criterion
        return self.mark_step_complete(f"{entity}_{name}")

    def complete_data_collection(self, entity: str = "client") -> None:
        for step in DATA_COLLECTION_STEPS:
            self.mark_step_complete(f"{entity}_{step}")

    def skip_entity(self, entity: str) -> None:
        """Count every remaining step of an entity that will not finish."""
        for step in DATA_COLLECTION_STEPS + CRITERIA_STEPS:
            self.mark_step_complete(f"{entity}_{step}")

    def complete(self) -> None:
        """Force the run to 100% and send the final completion broadcast."""
        if self._finished:
            return
        self._finished = True
        self._phase = Phase.COMPLETED
        self._percent = 100
        self._remaining_ms = 0
        self._pace = Pace.NORMAL
        self._operation = COMPLETE_MESSAGE
        self._message = COMPLETE_MESSAGE
        logger.info("Progress tracker: analysis completed in %dms", self._elapsed_ms())
        self._broadcast("complete")

    # -- reading -----------------------------------------------------------

    @property
    def is_complete(self) -> bool:
        return self._finished

    @property
    def steps_completed(self) -> int:
        return len(self._completed)

    @property
    def progress_text(self) -> str:
        return self._message

    def get_state(self) -> ProgressState:
        if not self._finished:
            self._recalculate_timing()
        return ProgressState(
            overall_percent=self._percent,
            time_elapsed_ms=self._elapsed_ms(),
            time_remaining_ms=self._remaining_ms,
            phase=self._phase,
            current_entity=self._entity,
            current_operation=self._operation,
            steps_completed=len(self._completed),
            steps_total=self._steps_total,
            competitors_complete=self._competitors_complete(),
            competitors_total=self._competitors_total,
            message=self._message,
            pace=self._pace,
        )

    def estimate_total_ms(self) -> int:
        per_client = (
            HISTORICAL_AVERAGES_MS["screenshot"]
            + HISTORICAL_AVERAGES_MS["tier1_criterion"] * TIER1_CRITERIA
            + HISTORICAL_AVERAGES_MS["tier2_criterion"] * TIER2_CRITERIA
            + HISTORICAL_AVERAGES_MS["page_speed"]
        )
        clients = max(self._clients_total, 1)
        return (
            clients * per_client
            + self._competitors_total * HISTORICAL_AVERAGES_MS["competitor_total"]
            + HISTORICAL_AVERAGES_MS["insights"]
        )

    # -- internals ---------------------------------------------------------

    def _phase_for_step(self, step_id: str) -> Phase | None:
        if step_id == INSIGHTS_STEP:
            return Phase.INSIGHTS
        match = _STEP_RE.match(step_id)
        if not match:
            return None
        entity, index, step = match.groups()
        if step not in DATA_COLLECTION_STEPS and step not in CRITERIA_STEPS:
            return None
        if index is None:
            return Phase.CLIENT
        if self._steps_total and int(index) >= self._competitors_total:
            return None
        return Phase.COMPETITORS

    def _advance_phase(self, phase: Phase) -> None:
        if phase.rank > self._phase.rank:
            self._phase = phase
            if phase is Phase.CLIENT and not self._operation.startswith("Analyzing"):
                self._operation = "Analyzing your website"

    def _competitors_complete(self) -> int:
        done = 0
        for index in range(self._competitors_total):
            entity = entity_for_competitor(index)
            if all(f"{entity}_{s}" in self._completed for s in DATA_COLLECTION_STEPS + CRITERIA_STEPS):
                done += 1
        return done

    def _elapsed_ms(self) -> int:
        return int((self._clock() - self._start) * 1000)

    def _changed(self) -> None:
        if self._steps_total:
            percent = int(round_half_up(len(self._completed) / self._steps_total * 100))
            self._percent = max(self._percent, min(percent, 100))
        self._recalculate_timing()
        self._broadcast("progress")

    def _recalculate_timing(self) -> None:
        elapsed = self._elapsed_ms()
        total = self.estimate_total_ms()
        self._remaining_ms = max(0, total - elapsed)

        expected = self._percent / 100 * total
        if expected <= 0:
            self._pace = Pace.NORMAL
        elif elapsed < expected * 0.8:
            self._pace = Pace.FASTER
        elif elapsed > expected * 1.2:
            self._pace = Pace.SLOWER
        else:
            self._pace = Pace.NORMAL

        self._message = self._build_message(elapsed)

    def _build_message(self, elapsed_ms: int) -> str:
        if self._phase is Phase.INITIALIZING:
            return INITIAL_MESSAGE
        seconds = math.ceil(self._remaining_ms / 1000)
        if elapsed_ms > 30000 and seconds > 0:
            if seconds < 60:
                return f"{self._operation} (about {seconds} seconds remaining)"
            minutes = math.ceil(seconds / 60)
            return f"{self._operation} (about {minutes} minute{'s' if minutes > 1 else ''} remaining)"
        return self._operation

    def _broadcast(self, event_type: str) -> None:
        if self.broadcaster is None or self.channel is None:
            return
        payload: dict[str, Any] = {
            "type": event_type,
            "run_id": self.run_id,
            "state": self.get_state().to_dict(),
        }
        safe_publish(self.broadcaster, self.channel, payload)
