"""
Streak Engine — Package Initializer
=====================================

Daily streak computation for the study app: once per day it decides, for every
user and every study circle, whether a streak continues, resets or earns a
freeze token.

Architecture Note:

    ┌─────────────────────────────────────┐
    │   Triggers: HTTP route / cron CLI   │  ← invocation only
    ├─────────────────────────────────────┤
    │     StreakJob (orchestrator)        │  ← fan-out, failure isolation
    ├─────────────────────────────────────┤
    │  Updaters + Local-Day Resolver      │  ← pure decision logic
    ├─────────────────────────────────────┤
    │     StreakStore (SQLAlchemy)        │  ← reads, CAS writes, retries
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
