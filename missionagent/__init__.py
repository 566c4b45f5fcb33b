"""
MissionAgent - autonomous mission execution engine.

Missions are planned into versioned plans of dependent tasks by a
reasoning service, executed through named tools, judged for completion and
reflected upon. Everything is persisted in a relational store.
"""

__version__ = "0.1.0"
