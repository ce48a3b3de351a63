# Services package init
"""
Streak Engine — Services Layer
================================

Service Inventory:
    - local_day:      Local-Day Resolver (pure, zoneinfo calendar arithmetic)
    - user_streaks:   User Streak Updater (continue / reset / start, freeze tokens)
    - circle_streaks: Circle Streak Updater (participation threshold)
    - streak_store:   Data store reads and compare-and-swap writes
    - streak_job:     Batch orchestrator with per-entity failure isolation
"""
