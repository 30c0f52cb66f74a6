"""
labcalc: calculation core for construction-materials lab tests.

- restricted formula language and calculated-field engine
- template schema/rules model with row validation and KPI compliance
- built-in test definitions (sand cone, field density, compaction)
- row-set calculators (sieve analysis, CBR, aggregate strength, Proctor,
  Atterberg limits) and the final report summary

Persistence, PDF/Excel export and authentication live outside this package.
"""

from .calculator import CalcResult, CalculationSkipped, calculate, run_calculations
from .compliance import ComplianceResult, evaluate_compliance, evaluate_rules
from .definitions import TEST_DEFINITIONS, evaluate_definition, get_definition
from .schema import load_template, validate_row, validate_schema
from .summary import build_summary

__all__ = [
    "CalcResult",
    "CalculationSkipped",
    "ComplianceResult",
    "TEST_DEFINITIONS",
    "build_summary",
    "calculate",
    "evaluate_compliance",
    "evaluate_definition",
    "evaluate_rules",
    "get_definition",
    "load_template",
    "run_calculations",
    "validate_row",
    "validate_schema",
]
