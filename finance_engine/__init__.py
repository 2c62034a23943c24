"""Top‑level package for the Finance Engine.

Pure calculation routines behind a personal-finance tracker. Records go
in as dataclasses or plain mappings, plain result records come out. The
primary modules are:

* ``budget_stats`` – consumption of custom and needs/wants/savings budgets
* ``settlement`` – labels for expenses incurred in one month and paid in another
* ``goals`` – savings goal feasibility, progress and deposits
* ``projections`` – month-end income and expense forecasts
* ``synchronizer`` – keeps system budgets in step with goals and income

Nothing here talks to a database or the network; the synchronizer writes
through whatever store the caller hands it.
"""

import logging

from . import budget_stats  # noqa: F401  # re-exported for convenience
from . import goals  # noqa: F401  # re-exported for convenience
from . import projections  # noqa: F401  # re-exported for convenience
from . import settlement  # noqa: F401  # re-exported for convenience
from . import synchronizer  # noqa: F401  # re-exported for convenience
from .budget_stats import custom_budget_stats, system_budget_stats
from .exceptions import FinanceEngineError, InvalidRecordError, SynchronizationError
from .goals import apply_deposit, audit_goal_feasibility
from .projections import build_projection
from .settlement import detect_cross_period_settlement
from .synchronizer import SystemBudgetSynchronizer

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "budget_stats",
    "goals",
    "projections",
    "settlement",
    "synchronizer",
    "custom_budget_stats",
    "system_budget_stats",
    "detect_cross_period_settlement",
    "audit_goal_feasibility",
    "apply_deposit",
    "build_projection",
    "SystemBudgetSynchronizer",
    "FinanceEngineError",
    "InvalidRecordError",
    "SynchronizationError",
]
