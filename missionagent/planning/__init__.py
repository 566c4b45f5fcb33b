from .planning_engine import PlanningEngine, build_task_specs

__all__ = ["PlanningEngine", "build_task_specs"]
