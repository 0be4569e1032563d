"""Swipe gesture → keep/remove intent translation.

The translator only turns pointer displacement into visual feedback and a
release plan.  It never touches review state: the engine consumes the
:class:`~core.models.SwipeRelease` and commits the outcome itself.
"""

from __future__ import annotations

from core.models import Direction, Feedback, Outcome, SwipeRelease

CAPTURE_THRESHOLD = 20  # px before a move is treated as a swipe
PREVIEW_THRESHOLD = 50  # px before the keep/remove overlay shows
COMMIT_THRESHOLD = 120  # px on release to commit; also full overlay opacity
OFFSCREEN_X = 500
COMMIT_DURATION_MS = 300
MAX_ROTATION_DEG = 30.0
ROTATION_RANGE = 200.0


def _rotation_for(dx: float) -> float:
    """Linear dx → degrees over ±ROTATION_RANGE, clamped to ±MAX_ROTATION_DEG."""
    ratio = max(-1.0, min(dx / ROTATION_RANGE, 1.0))
    return ratio * MAX_ROTATION_DEG


def direction_for(dx: float) -> Direction:
    return Direction.RIGHT if dx > 0 else Direction.LEFT


def outcome_for(direction: Direction) -> Outcome:
    return Outcome.KEEP if direction == Direction.RIGHT else Outcome.REMOVE


class GestureTranslator:
    """Stateful per-card drag tracker."""

    def __init__(self) -> None:
        self.feedback = Feedback()
        self.active = False

    @staticmethod
    def should_capture(dx: float, dy: float) -> bool:
        return abs(dx) > CAPTURE_THRESHOLD or abs(dy) > CAPTURE_THRESHOLD

    def grant(self) -> Feedback:
        """Start a new drag from a neutral card."""
        self.active = True
        self.feedback = Feedback()
        return self.feedback

    def sample(self, dx: float, dy: float) -> Feedback:
        if not self.active:
            self.grant()

        if abs(dx) > PREVIEW_THRESHOLD:
            direction = direction_for(dx)
            intensity = min(abs(dx) / COMMIT_THRESHOLD, 1.0)
        else:
            direction = Direction.NONE
            intensity = 0.0

        self.feedback = Feedback(
            direction=direction,
            intensity=intensity,
            translate_x=dx,
            translate_y=dy,
            rotation_deg=_rotation_for(dx),
        )
        return self.feedback

    def release(self, dx: float, dy: float) -> SwipeRelease:
        """Decide what happens when the pointer is lifted at ``(dx, dy)``.

        Past the commit threshold the card flies off-screen and the outcome
        is attached; otherwise every transient value springs back to 0.
        """
        self.active = False
        if abs(dx) > COMMIT_THRESHOLD:
            direction = direction_for(dx)
            self.feedback = Feedback(
                direction=direction,
                intensity=1.0,
                translate_x=dx,
                translate_y=dy,
                rotation_deg=_rotation_for(dx),
            )
            return SwipeRelease(
                outcome=outcome_for(direction),
                animation="timing",
                target_x=OFFSCREEN_X if direction == Direction.RIGHT else -OFFSCREEN_X,
                duration_ms=COMMIT_DURATION_MS,
            )

        self.feedback = Feedback()
        return SwipeRelease()

    def reset(self) -> Feedback:
        self.active = False
        self.feedback = Feedback()
        return self.feedback
