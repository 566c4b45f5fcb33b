from .goal_tracker import GoalTracker

__all__ = ["GoalTracker"]
