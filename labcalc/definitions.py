"""
Generic step-by-step test definitions.

One data structure (ordered steps with typed fields, a calculation map and
field validations) drives every wizard-style test. Steps are evaluated in
order; outputs of a step are merged into the values seen by later steps,
and within a step formulas run in dependency order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .calculator import CalcResult, CalculationSkipped, run_calculations
from .compliance import ComplianceResult, evaluate_compliance
from .schema import (
    REASON_OUT_OF_RANGE,
    REASON_REQUIRED,
    REASON_TYPE_MISMATCH,
    TemplateRules,
    ValidationError,
    is_blank,
    to_number,
)

NUMERIC_FIELD_TYPES = ("number", "measurement")

MIN_DEGREE_COMPACTION_PCT = 95.0

DENSITY_RANGE_KG_M3 = (800.0, 2500.0)
MOISTURE_RANGE_PCT = (0.0, 50.0)

# display rounding for calculated outputs without an explicit entry
DEFAULT_OUTPUT_DECIMALS = 2


class UnknownTestType(KeyError):
    pass


@dataclass(frozen=True)
class TestField:
    __test__ = False

    key: str
    label: str
    type: str = "number"
    unit: str | None = None
    placeholder: str | None = None
    required: bool = False
    options: tuple[str, ...] | None = None
    help_text: str | None = None
    precision: int | None = None


@dataclass(frozen=True)
class FieldRule:
    min: float | None = None
    max: float | None = None
    required: bool | None = None


@dataclass(frozen=True)
class TestStep:
    __test__ = False

    id: str
    title: str
    description: str
    fields: tuple[TestField, ...]
    calculations: dict[str, str] = field(default_factory=dict)
    validations: dict[str, FieldRule] = field(default_factory=dict)
    decimals: dict[str, int] = field(default_factory=dict)

    def output_decimals(self, output: str) -> int:
        return self.decimals.get(output, DEFAULT_OUTPUT_DECIMALS)


@dataclass(frozen=True)
class TestDefinition:
    __test__ = False

    test_type: str
    title: str
    steps: tuple[TestStep, ...]
    compliance: TemplateRules | None = None

    def fields(self) -> list[TestField]:
        return [f for step in self.steps for f in step.fields]


@dataclass(frozen=True)
class DefinitionResult:
    values: dict[str, Any]
    calculated: dict[str, float]
    skipped: tuple[CalculationSkipped, ...]
    compliance: ComplianceResult


def _density_rule() -> FieldRule:
    return FieldRule(min=DENSITY_RANGE_KG_M3[0], max=DENSITY_RANGE_KG_M3[1])


def _moisture_rule() -> FieldRule:
    return FieldRule(min=MOISTURE_RANGE_PCT[0], max=MOISTURE_RANGE_PCT[1])


SAND_CONE = TestDefinition(
    test_type="sand_cone",
    title="Sand Cone Field Density",
    steps=(
        TestStep(
            id="preparation",
            title="Equipment Preparation",
            description="Weigh the sand cone apparatus and prepare the test hole",
            fields=(
                TestField(
                    "apparatus_weight",
                    "Weight of Sand Cone Apparatus",
                    unit="kg",
                    required=True,
                    help_text="Include weight of sand, funnel, and jar",
                    precision=3,
                ),
                TestField(
                    "sand_density",
                    "Calibrated Sand Density",
                    unit="kg/m³",
                    required=True,
                    help_text="From calibration test - typically 1400-1600 kg/m³",
                ),
                TestField(
                    "funnel_volume",
                    "Sand Volume in Funnel",
                    unit="cm³",
                    required=True,
                    help_text="Volume of sand that remains in funnel after test",
                ),
            ),
            validations={"sand_density": _density_rule()},
        ),
        TestStep(
            id="excavation",
            title="Hole Excavation & Measurement",
            description="Excavate the test hole and measure the sand required to fill it",
            fields=(
                TestField("apparatus_weight_after", "Weight of Apparatus After Test", unit="kg", required=True, precision=3),
                TestField("wet_soil_weight", "Weight of Excavated Wet Soil", unit="kg", required=True, precision=3),
            ),
            calculations={
                "sand_used": "apparatus_weight - apparatus_weight_after",
                "hole_volume": "(sand_used * 1000000) / sand_density - funnel_volume",
                "wet_density": "(wet_soil_weight * 1000000) / hole_volume",
            },
            decimals={"sand_used": 3, "hole_volume": 1},
        ),
        TestStep(
            id="moisture",
            title="Moisture Content Determination",
            description="Determine the moisture content of the excavated soil",
            fields=(
                TestField("container_weight", "Weight of Empty Container", unit="g", required=True),
                TestField("wet_soil_container_weight", "Weight of Wet Soil + Container", unit="g", required=True),
                TestField("dry_soil_container_weight", "Weight of Dry Soil + Container", unit="g", required=True),
            ),
            calculations={
                "wet_soil_weight_sample": "wet_soil_container_weight - container_weight",
                "dry_soil_weight_sample": "dry_soil_container_weight - container_weight",
                "moisture_content": (
                    "((wet_soil_weight_sample - dry_soil_weight_sample) / dry_soil_weight_sample) * 100"
                ),
                "dry_density": "wet_density / (1 + moisture_content / 100)",
            },
        ),
    ),
)

FIELD_DENSITY = TestDefinition(
    test_type="field_density",
    title="Field Density (Degree of Compaction)",
    steps=(
        TestStep(
            id="laboratory_values",
            title="Laboratory Reference Values",
            description="Enter the maximum dry density and optimum moisture from laboratory tests",
            fields=(
                TestField(
                    "max_dry_density",
                    "Maximum Dry Density (Lab)",
                    unit="kg/m³",
                    required=True,
                    help_text="From Standard or Modified Proctor test",
                ),
                TestField("optimum_moisture", "Optimum Moisture Content", unit="%", required=True),
                TestField(
                    "test_method",
                    "Laboratory Test Method",
                    type="select",
                    required=True,
                    options=("AASHTO T99 (Standard)", "AASHTO T180 (Modified)", "BS 1377", "AS 1289"),
                ),
            ),
            validations={"max_dry_density": _density_rule(), "optimum_moisture": _moisture_rule()},
        ),
        TestStep(
            id="field_measurements",
            title="Field Measurements",
            description="Measure the field density and moisture content",
            fields=(
                TestField("field_wet_density", "Field Wet Density", unit="kg/m³", required=True),
                TestField("field_moisture", "Field Moisture Content", unit="%", required=True),
                TestField(
                    "test_location",
                    "Test Location Description",
                    type="text",
                    placeholder="e.g., Centerline, 2m from edge",
                ),
            ),
            calculations={
                "field_dry_density": "field_wet_density / (1 + field_moisture / 100)",
                "degree_compaction": "(field_dry_density / max_dry_density) * 100",
                "moisture_ratio": "field_moisture / optimum_moisture",
            },
            decimals={"moisture_ratio": 3},
            validations={"field_wet_density": _density_rule(), "field_moisture": _moisture_rule()},
        ),
    ),
    compliance=TemplateRules(
        thresholds={"min_degree_compaction": MIN_DEGREE_COMPACTION_PCT},
        pass_condition="degree_compaction >= min_degree_compaction",
        remarks="PASS when degree of compaction is at least 95%",
    ),
)

COMPACTION = TestDefinition(
    test_type="compaction",
    title="Compaction (Proctor) Point",
    steps=(
        TestStep(
            id="sample_prep",
            title="Sample Preparation",
            description="Prepare soil sample and select test method",
            fields=(
                TestField(
                    "test_method",
                    "Compaction Method",
                    type="select",
                    required=True,
                    options=("Standard Proctor (AASHTO T99)", "Modified Proctor (AASHTO T180)"),
                ),
                TestField(
                    "mold_volume",
                    "Mold Volume",
                    unit="cm³",
                    required=True,
                    help_text="Standard: 943.3 cm³, Modified: 2124 cm³",
                ),
                TestField(
                    "sample_preparation",
                    "Sample Preparation Method",
                    type="select",
                    required=True,
                    options=("Wet preparation", "Dry preparation"),
                ),
            ),
        ),
        TestStep(
            id="compaction_tests",
            title="Compaction Points",
            description="Record data for each moisture content point (minimum 5 points)",
            fields=(
                TestField(
                    "point_number",
                    "Point Number",
                    type="select",
                    required=True,
                    options=tuple(f"Point {i}" for i in range(1, 7)),
                ),
                TestField("wet_weight_soil_mold", "Weight of Wet Soil + Mold", unit="kg", required=True),
                TestField("mold_weight", "Weight of Mold", unit="kg", required=True),
                TestField("moisture_content_point", "Moisture Content", unit="%", required=True),
            ),
            calculations={
                "wet_weight_soil": "wet_weight_soil_mold - mold_weight",
                "wet_density": "(wet_weight_soil / mold_volume) * 1000",
                "dry_density": "wet_density / (1 + moisture_content_point / 100)",
            },
            decimals={"wet_weight_soil": 3, "wet_density": 3, "dry_density": 3},
            validations={"moisture_content_point": _moisture_rule()},
        ),
    ),
)

TEST_DEFINITIONS: dict[str, TestDefinition] = {
    d.test_type: d for d in (SAND_CONE, FIELD_DENSITY, COMPACTION)
}


def get_definition(test_type: str) -> TestDefinition:
    try:
        return TEST_DEFINITIONS[test_type]
    except KeyError:
        raise UnknownTestType(f"Test configuration not found for: {test_type}") from None


def validate_field(test_field: TestField, value: Any, rule: FieldRule | None = None) -> ValidationError | None:
    required = test_field.required if rule is None or rule.required is None else rule.required
    if is_blank(value):
        if required:
            return ValidationError(test_field.key, REASON_REQUIRED, f"{test_field.label} is required")
        return None
    if test_field.type in NUMERIC_FIELD_TYPES:
        num = to_number(value)
        if num is None:
            return ValidationError(test_field.key, REASON_TYPE_MISMATCH, f"{test_field.label} must be a valid number")
        if rule is not None:
            if (rule.min is not None and num < rule.min) or (rule.max is not None and num > rule.max):
                unit = f" {test_field.unit}" if test_field.unit else ""
                lo = "-inf" if rule.min is None else f"{rule.min:g}"
                hi = "inf" if rule.max is None else f"{rule.max:g}"
                return ValidationError(
                    test_field.key,
                    REASON_OUT_OF_RANGE,
                    f"{test_field.label} should be between {lo} and {hi}{unit}",
                )
        return None
    if test_field.type == "select" and test_field.options and value not in test_field.options:
        return ValidationError(test_field.key, REASON_TYPE_MISMATCH, f"{test_field.label} must be one of the options")
    return None


def validate_step(step: TestStep, data: Mapping[str, Any]) -> list[ValidationError]:
    errors: list[ValidationError] = []
    for test_field in step.fields:
        problem = validate_field(test_field, data.get(test_field.key), step.validations.get(test_field.key))
        if problem is not None:
            errors.append(problem)
    return errors


def is_step_complete(step: TestStep, data: Mapping[str, Any]) -> bool:
    """Every required field filled in and no field of the step has an error."""
    return not validate_step(step, data)


def first_incomplete_step(definition: TestDefinition, data: Mapping[str, Any]) -> int | None:
    for idx, step in enumerate(definition.steps):
        if not is_step_complete(step, data):
            return idx
    return None


def can_advance(definition: TestDefinition, step_index: int, data: Mapping[str, Any]) -> bool:
    """Sequential gating: the wizard may leave step_index only when it is complete."""
    if not 0 <= step_index < len(definition.steps) - 1:
        return False
    return is_step_complete(definition.steps[step_index], data)


def coerce_inputs(definition: TestDefinition, data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Form values -> calculation inputs. Numeric fields become floats; blank or
    non-numeric entries become None, so dependent formulas are skipped
    rather than computed from a placeholder zero.
    """
    out = dict(data)
    for test_field in definition.fields():
        if test_field.type in NUMERIC_FIELD_TYPES and test_field.key in data:
            out[test_field.key] = to_number(data[test_field.key])
    return out


def evaluate_step(step: TestStep, values: Mapping[str, Any]) -> CalcResult:
    return run_calculations(step.calculations, values, chain=True)


def definition_compliance(definition: TestDefinition, values: Mapping[str, Any]) -> ComplianceResult:
    rules = definition.compliance
    if rules is None:
        return evaluate_compliance(values, None, None)
    return evaluate_compliance(values, rules.thresholds, rules.pass_condition)


def evaluate_definition(definition: TestDefinition, data: Mapping[str, Any]) -> DefinitionResult:
    values = coerce_inputs(definition, data)
    calculated: dict[str, float] = {}
    skipped: list[CalculationSkipped] = []
    for step in definition.steps:
        result = evaluate_step(step, values)
        calculated.update(result.values)
        skipped.extend(result.skipped)
        values = result.merged(values)
    return DefinitionResult(
        values=values,
        calculated=calculated,
        skipped=tuple(skipped),
        compliance=definition_compliance(definition, calculated),
    )
