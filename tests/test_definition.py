import pytest

from fcalc.catalog import CalculatorStore
from fcalc.definition import (
    InvalidSyntax, MalformedDefinition, ReferenceNotFound,
    is_reference_block, normalize, parse_inline, resolve_block, upgrade_legacy, validate_for_save,
)
from fcalc.types import CalculatorDefinition, Formula, Variable

def _raw(**over):
    d = {
        "id": "abc12345",
        "name": "Sum",
        "variables": [
            {"name": "a", "label": "A", "type": "number", "value": 1},
            {"name": "b", "label": "B", "type": "number", "value": 2, "propertyMap": "bee"},
        ],
        "formulas": [{"name": "Total", "value": "a + b"}],
        "autoCalculate": True,
    }
    d.update(over)
    return d

def test_normalize_materializes_typed_definition():
    d = normalize(_raw())
    assert isinstance(d, CalculatorDefinition)
    assert d.id == "abc12345"
    assert d.variables[1] == Variable(name="b", type="number", label="B", value=2, property_map="bee")
    assert d.formulas == [Formula(name="Total", value="a + b")]
    assert d.auto_calculate is True
    assert d.render_formula is False

def test_normalize_is_idempotent():
    once = normalize(_raw())
    assert normalize(once) == once
    assert normalize(once.to_dict()) == once

def test_legacy_shape_is_upgraded():
    raw = _raw(formula="a+b", resultLabel="Sum")
    del raw["formulas"]
    d = normalize(raw)
    assert [f.to_dict() for f in d.formulas] == [{"name": "Sum", "value": "a+b"}]

def test_legacy_shape_without_label_uses_fallback():
    raw = _raw(formula="a+b")
    del raw["formulas"]
    assert normalize(raw).formulas == [Formula(name="Result", value="a+b")]

def test_upgrade_leaves_current_shape_alone():
    raw = _raw(formula="ignored")
    assert upgrade_legacy(raw)["formulas"] == raw["formulas"]
    assert upgrade_legacy(upgrade_legacy(raw)) == upgrade_legacy(raw)

def test_upgrade_does_not_mutate_input():
    raw = {"name": "x", "variables": [], "formula": "1"}
    upgrade_legacy(raw)
    assert "formulas" not in raw

@pytest.mark.parametrize("over", [
    {"name": ""},
    {"name": None},
    {"variables": "a,b"},
    {"formulas": []},
    {"formulas": {"name": "x", "value": "1"}},
    {"formulas": [{"name": "x"}]},
    {"variables": [{"name": "a", "type": "date"}]},
    {"variables": ["a"]},
])
def test_malformed_definitions_are_rejected(over):
    with pytest.raises(MalformedDefinition):
        normalize(_raw(**over))

def test_missing_formulas_key_is_rejected():
    raw = _raw()
    del raw["formulas"]
    with pytest.raises(MalformedDefinition):
        normalize(raw)

def test_parse_inline_assigns_raw_id():
    d = parse_inline('  {"name": "X", "variables": [], "formulas": [{"name": "R", "value": "1+1"}]}  ')
    assert d.id.startswith("raw-")
    assert len(d.id) == len("raw-") + 4

def test_parse_inline_rejects_reference_text():
    with pytest.raises(MalformedDefinition):
        parse_inline("abc12345")

def test_parse_inline_bad_json_is_invalid_syntax():
    with pytest.raises(InvalidSyntax) as exc:
        parse_inline('{"name": "X", ')
    assert "Invalid JSON" in str(exc.value)

def test_parse_inline_empty_object_is_malformed():
    with pytest.raises(MalformedDefinition):
        parse_inline("{}")

def test_is_reference_block():
    assert is_reference_block("  abc12345\n")
    assert not is_reference_block('\n  {"name": "x"}')

def test_resolve_block_reference_returns_copy():
    store = CalculatorStore(calculators=[normalize(_raw())])
    d, is_ref = resolve_block(" abc12345 ", store)
    assert is_ref
    assert d == store.calculators[0]
    d.variables[0].value = 99
    assert store.calculators[0].variables[0].value == 1

def test_resolve_block_unknown_reference():
    with pytest.raises(ReferenceNotFound) as exc:
        resolve_block("nope", CalculatorStore())
    assert exc.value.kind == "reference_not_found"
    assert 'Calculator with ID "nope" not found.' == str(exc.value)

def test_resolve_block_inline():
    d, is_ref = resolve_block('{"name": "X", "variables": [], "formula": "2"}', CalculatorStore())
    assert not is_ref
    assert d.formulas == [Formula(name="Result", value="2")]

def test_validate_for_save_flags_authoring_errors():
    d = normalize(_raw(
        variables=[{"name": "1a", "type": "number"}, {"name": "b", "type": "number"}, {"name": "b", "type": "text"}],
        formulas=[{"name": "R", "value": "b"}, {"name": "R", "value": " "}],
    ))
    with pytest.raises(MalformedDefinition) as exc:
        validate_for_save(d)
    msg = str(exc.value)
    assert "invalid variable name '1a'" in msg
    assert "duplicate variable name 'b'" in msg
    assert "duplicate formula name 'R'" in msg
    assert "is empty" in msg

def test_validate_for_save_accepts_clean_definition():
    validate_for_save(normalize(_raw()))

@pytest.mark.parametrize("word", ["and", "or", "not", "true", "false"])
def test_validate_for_save_rejects_reserved_variable_names(word):
    d = normalize(_raw(variables=[{"name": word, "type": "number"}], formulas=[{"name": "R", "value": "1"}]))
    with pytest.raises(MalformedDefinition) as exc:
        validate_for_save(d)
    assert f"reserved variable name '{word}'" in str(exc.value)
