"""
Domain Layer - Pure Business Logic

This layer contains:
- Clock/calendar adapter (the only notion of "today")
- Completion facts and derived views
- Unlock, streak, reveal and experiment-window rules

Key principle: ZERO dependencies on storage
All rules here run against plain snapshots, so they are tested without a database.
"""
