"""Aggregate per-piece verdicts into the puzzle's completion state."""

import logging
from collections import Counter
from typing import Iterable, List, Mapping, Optional

from tangram_engine.services.placement.models import (
    AnchorState,
    CompletionEvent,
    CompletionResult,
    CompletionStatus,
    ValidationVerdict,
)

logger = logging.getLogger(__name__)


class CompletionEvaluator:
    """Recompute the puzzle status from scratch on every evaluation.

    The only state kept between calls is the previous status, used to emit the
    ``started`` and ``completed`` events once per edge.
    """

    def __init__(self) -> None:
        """Initialize with a puzzle that has not been started."""
        self._previous = CompletionStatus.NOT_STARTED

    @property
    def previous_status(self) -> CompletionStatus:
        """Status produced by the last evaluation."""
        return self._previous

    def evaluate(
        self,
        target_ids: Iterable[str],
        verdicts: Mapping[str, ValidationVerdict],
        stable_ids: Iterable[str],
        anchor_state: Optional[AnchorState] = None,
        awaiting_anchor: bool = False,
    ) -> CompletionResult:
        """Evaluate the puzzle for the current tick.

        Args:
            target_ids: Ids of all target pieces of the puzzle.
            verdicts: Current verdicts keyed by target id.
            stable_ids: Observation ids that are settled this tick.
            anchor_state: Anchor state to report alongside the status.
            awaiting_anchor: Relative mode has no anchor yet; verdicts are withheld.

        Returns:
            CompletionResult with the status, matched target ids and any edge events.
        """
        targets = list(target_ids)
        stable = set(stable_ids)
        anchor_id = anchor_state.anchor_piece_id if anchor_state else None

        if awaiting_anchor:
            status = CompletionStatus.NOT_STARTED
            matched: List[str] = []
        else:
            matched_verdicts = [
                verdicts[t]
                for t in targets
                if t in verdicts and verdicts[t].is_match and verdicts[t].observed_id in stable
            ]
            # An observed piece may satisfy at most one target
            usage = Counter(v.observed_id for v in matched_verdicts)
            matched = [v.target_id for v in matched_verdicts if usage[v.observed_id] == 1]

            if not matched:
                status = CompletionStatus.NOT_STARTED
            elif len(matched) == len(targets):
                status = CompletionStatus.COMPLETE
            else:
                status = CompletionStatus.IN_PROGRESS

        events = []
        if self._previous is CompletionStatus.NOT_STARTED and status is not CompletionStatus.NOT_STARTED:
            events.append(CompletionEvent.STARTED)
        if status is CompletionStatus.COMPLETE and self._previous is not CompletionStatus.COMPLETE:
            events.append(CompletionEvent.COMPLETED)
            logger.info("Puzzle complete")
        elif self._previous is CompletionStatus.COMPLETE and status is not CompletionStatus.COMPLETE:
            logger.info("Puzzle no longer complete: %s", status.value)

        self._previous = status
        return CompletionResult(
            status=status,
            matched_target_ids=tuple(matched),
            events=tuple(events),
            anchor_piece_id=anchor_id,
            awaiting_anchor=awaiting_anchor,
        )
