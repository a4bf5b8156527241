# linkwatch/brain/state.py
from dataclasses import dataclass
from typing import Optional

from linkwatch.schemas import Endpoint, ProbeOutcome


@dataclass
class EndpointState:
    endpoint: Endpoint
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    last_outcome: Optional[ProbeOutcome] = None

    def update(self, outcome: ProbeOutcome) -> None:
        if outcome.success:
            self.consecutive_failures = 0
            self.consecutive_successes += 1
        else:
            self.consecutive_successes = 0
            self.consecutive_failures += 1
        self.last_outcome = outcome

    @property
    def is_failing(self) -> bool:
        return self.consecutive_failures > 0


@dataclass
class AggregateState:
    # streaks across all endpoints jointly; one failing endpoint is enough
    # to count the tick as an aggregate failure
    failures: int = 0
    successes: int = 0

    def update(self, any_failing: bool) -> None:
        if any_failing:
            self.successes = 0
            self.failures += 1
        else:
            self.failures = 0
            self.successes += 1
