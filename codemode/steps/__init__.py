"""Pipeline stages: filter, synthesize, plan, implement, verify, execute."""

from __future__ import annotations

from .execute import ExecuteCodeResult, ToolBindingTable, ToolCallRecord, execute_code
from .filter_tools import FilterToolsResult, filter_tools_for_query, parse_selection
from .implement import ImplementResult, implement_code
from .plan import PlanResult, generate_plan
from .synthesize import SignatureSet, ToolSignature, synthesize_signatures
from .verify import CompileDiagnostic, CompileResult, CompileVerifier

__all__ = [
    "CompileDiagnostic",
    "CompileResult",
    "CompileVerifier",
    "ExecuteCodeResult",
    "FilterToolsResult",
    "ImplementResult",
    "PlanResult",
    "SignatureSet",
    "ToolBindingTable",
    "ToolCallRecord",
    "ToolSignature",
    "execute_code",
    "filter_tools_for_query",
    "generate_plan",
    "implement_code",
    "parse_selection",
    "synthesize_signatures",
]
