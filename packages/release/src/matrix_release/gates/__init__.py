from .checks import DEFAULT_GATES, GateResult, QualityGate, run_gate, run_gates

__all__ = ["DEFAULT_GATES", "GateResult", "QualityGate", "run_gate", "run_gates"]
