from sqlalchemy.orm import Session

from chipvote.models.session import SessionPhase


class ManualScheduler:
    """Timer stand-in driven by an explicit virtual clock."""

    class _Handle:
        def __init__(self, due, callback):
            self.due = due
            self.callback = callback
            self.cancelled = False

        def cancel(self):
            self.cancelled = True

    def __init__(self):
        self.now = 0.0
        self._timers = []

    def __call__(self, delay, callback):
        handle = self._Handle(self.now + delay, callback)
        self._timers.append(handle)
        return handle

    @property
    def pending(self):
        return [timer for timer in self._timers if not timer.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self._timers.remove(timer)
            self.now = timer.due
            timer.callback()
        self.now = target


def set_phase(db: Session, session, phase: SessionPhase) -> None:
    """Jump straight to a phase, skipping the transition table."""
    session.phase = phase.value
    db.commit()
    db.refresh(session)


def even_split(option_ids, chips_per_type=4):
    """Spread every chip over ``option_ids`` so the budget is used exactly."""
    ids = list(option_ids)
    allocations = {option_id: {"time": 0, "talent": 0, "trust": 0} for option_id in ids}
    for chip_type in ("time", "talent", "trust"):
        for index in range(chips_per_type):
            allocations[ids[index % len(ids)]][chip_type] += 1
    return allocations


def all_on(option_id, chips_per_type=4):
    return {
        option_id: {
            "time": chips_per_type,
            "talent": chips_per_type,
            "trust": chips_per_type,
        }
    }
