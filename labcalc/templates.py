"""Built-in example templates (schema + rules) for template-driven tests."""

from __future__ import annotations

from typing import Any

from .schema import TemplateRules, TemplateSchema, load_template

FIELD_DENSITY_TEMPLATE: dict[str, Any] = {
    "name": "Field Density Test",
    "test_type": "field_density",
    "schema": {
        "columns": [
            {"id": "sample_no", "label": "Sample No.", "type": "text", "required": True},
            {
                "id": "wet_density",
                "label": "Wet Density",
                "type": "number",
                "unit": "g/cm³",
                "decimals": 3,
                "required": True,
                "min": 1.5,
                "max": 2.8,
            },
            {
                "id": "dry_density",
                "label": "Dry Density",
                "type": "number",
                "unit": "g/cm³",
                "decimals": 3,
                "required": True,
            },
            {
                "id": "moisture_content",
                "label": "Moisture Content",
                "type": "number",
                "unit": "%",
                "decimals": 2,
            },
        ],
        "locked": ["sample_no"],
        "required": ["wet_density", "dry_density"],
        "named_ranges": {"density_range": ["dry_density"]},
    },
    "rules": {
        "kpis": {"avg_dry_density": "AVG(dry_density)"},
        "thresholds": {"min_avg_dry_density": 1.90},
        "pass_condition": "avg_dry_density >= min_avg_dry_density",
        "remarks": "Auto: PASS if average dry density meets the threshold",
    },
}

PROCTOR_TEMPLATE: dict[str, Any] = {
    "name": "Proctor Compaction Test",
    "test_type": "proctor",
    "schema": {
        "columns": [
            {"id": "point", "label": "Point", "type": "text", "required": True},
            {
                "id": "moisture_content",
                "label": "Moisture Content",
                "type": "number",
                "unit": "%",
                "decimals": 2,
                "required": True,
            },
            {
                "id": "dry_density",
                "label": "Dry Density",
                "type": "number",
                "unit": "g/cm³",
                "decimals": 3,
                "required": True,
            },
            {
                "id": "wet_density",
                "label": "Wet Density",
                "type": "number",
                "unit": "g/cm³",
                "decimals": 3,
            },
        ],
        "locked": ["point"],
        "required": ["moisture_content", "dry_density"],
        "named_ranges": {"density_curve": ["moisture_content", "dry_density"]},
    },
    "rules": {
        "kpis": {
            "max_dry_density": "MAX(dry_density)",
            "optimum_moisture": "moisture_content[MAX_INDEX(dry_density)]",
        },
        "thresholds": {"min_max_density": 1.85},
        "pass_condition": "max_dry_density >= min_max_density",
        "remarks": "Maximum dry density achieved",
    },
}

EXAMPLE_TEMPLATES: dict[str, dict[str, Any]] = {
    FIELD_DENSITY_TEMPLATE["test_type"]: FIELD_DENSITY_TEMPLATE,
    PROCTOR_TEMPLATE["test_type"]: PROCTOR_TEMPLATE,
}


def get_template(name: str) -> tuple[TemplateSchema, TemplateRules | None]:
    if name not in EXAMPLE_TEMPLATES:
        known = ", ".join(sorted(EXAMPLE_TEMPLATES))
        raise KeyError(f"Unknown template: {name} (known: {known})")
    data = EXAMPLE_TEMPLATES[name]
    return load_template(data["schema"], data.get("rules"))
