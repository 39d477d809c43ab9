"""Analysis pipeline package.

Modules follow the path a capture takes once it is submitted:

1. `inflight` – guard against submitting the same capture twice.
2. `queue` – order jobs by priority and run them one at a time.
3. `events` – notify the UI observer about start/item/error/complete.
4. `counting` – derive the pending/analyzed badges from the collection.

The orchestrator service in ``snapsight.services.orchestrator`` owns one
instance of each and is the only code that mutates them.
"""

from .counting import calculate_counters, log_counters
from .events import AnalysisEventBus, AnalysisEventHandlers
from .inflight import InFlightTracker
from .queue import AnalysisPriorityQueue
from .types import AnalysisCounters, AnalysisJob, JobHandle, Priority

__all__ = [
    "AnalysisCounters",
    "AnalysisEventBus",
    "AnalysisEventHandlers",
    "AnalysisJob",
    "AnalysisPriorityQueue",
    "InFlightTracker",
    "JobHandle",
    "Priority",
    "calculate_counters",
    "log_counters",
]
