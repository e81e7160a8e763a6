from promotion_engine.services.evaluation_service import PromotionEvaluationService, TreeRegistry
from promotion_engine.services.scenario_service import (
    ScenarioCase,
    ScenarioResult,
    ScenarioSuite,
    load_scenarios,
    run_all_scenarios,
    run_scenario,
)

__all__ = [
    "PromotionEvaluationService",
    "TreeRegistry",
    "ScenarioCase",
    "ScenarioResult",
    "ScenarioSuite",
    "load_scenarios",
    "run_all_scenarios",
    "run_scenario",
]
