from typing import Any, Dict, List, Mapping, Tuple

from langgraph.graph import StateGraph, START, END

from registration.state import StepCheckState
from registration.validator import RegistrationValidator


class StepCheckGraphFactory:
    def __init__(self, validator: RegistrationValidator):
        self.validator = validator

    @staticmethod
    def step_complete(state: StepCheckState) -> Dict[str, Any]:
        """
        Only reached when both field and verification checks left no errors.
        """
        return {"is_valid": True}

    def build(self) -> StateGraph:
        g = StateGraph(StepCheckState)

        g.add_node("fields", self.validator.check_fields)
        g.add_node("verification", self.validator.check_verification)
        g.add_node("complete", self.step_complete)

        g.add_edge(START, "fields")
        g.add_edge("fields", "verification")

        g.add_conditional_edges(
            "verification",
            self.validator.should_complete,
            {"end": END, "complete": "complete"},
        )
        g.add_edge("complete", END)

        return g

    def compile(self):
        # No checkpointer: a step check is a pure function of its input.
        return self.build().compile()


class StepChecker:
    """Runs the compiled step graph and returns (is_valid, errors)."""

    def __init__(self, validator: RegistrationValidator):
        self.validator = validator
        self.graph = StepCheckGraphFactory(validator).compile()

    def check(self, step: Any, data: Mapping[str, Any], verified: Mapping[str, bool]) -> Tuple[bool, List[str]]:
        out = self.graph.invoke(
            {
                "step": str(getattr(step, "value", step)),
                "data": dict(data),
                "verified": dict(verified),
            }
        )
        if isinstance(out, StepCheckState):
            return out.is_valid, list(out.errors)
        return bool(out.get("is_valid", False)), list(out.get("errors", []))
