import json

from common.rules_engine.catalog import build_catalog, main


def test_catalog_lists_operators_and_transforms():
    catalog = build_catalog()

    operators = {entry.operator: entry for entry in catalog.operators}
    assert operators["isEmpty"].requires_value is False
    assert operators["greaterThan"].data_types == ["date", "number"]
    assert operators["contains"].data_types == ["string"]

    transforms = {entry.key: entry for entry in catalog.transforms}
    assert transforms["multiply"].requires_parameter is True
    assert set(transforms) >= {"absolute", "negate", "multiply", "uppercase", "lowercase", "trim"}
    assert "conditions" in catalog.rule_schema["properties"]


def test_catalog_cli_prints_json(capsys):
    main(["--indent", "0"])
    payload = json.loads(capsys.readouterr().out)
    assert payload["logic"] == ["ALL", "ANY"]
    assert "IGNORE_ROW" in payload["action_types"]
