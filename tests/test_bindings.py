from fcalc.bindings import resolve_initial_values, zero_value
from fcalc.types import Variable

def _weight():
    return [Variable(name="x", type="number", value=5, property_map="weight")]

def test_external_source_overrides_default():
    assert resolve_initial_values(_weight(), {"weight": 9}) == {"x": 9}

def test_missing_key_or_source_keeps_default():
    assert resolve_initial_values(_weight(), {}) == {"x": 5}
    assert resolve_initial_values(_weight(), None) == {"x": 5}
    assert resolve_initial_values(_weight(), {"other": 1}) == {"x": 5}

def test_none_external_value_is_ignored():
    assert resolve_initial_values(_weight(), {"weight": None}) == {"x": 5}

def test_property_map_is_trimmed():
    v = [Variable(name="x", type="number", value=5, property_map="  weight ")]
    assert resolve_initial_values(v, {"weight": 12}) == {"x": 12}

def test_blank_property_map_never_reads_source():
    v = [Variable(name="x", type="number", value=5, property_map="   ")]
    assert resolve_initial_values(v, {"": 1, "   ": 2}) == {"x": 5}

def test_external_value_is_passed_through_raw():
    # coercion happens at recompute time, not here
    assert resolve_initial_values(_weight(), {"weight": "9.5"}) == {"x": "9.5"}

def test_zero_values_per_type():
    vs = [Variable(name="n", type="number"), Variable(name="t", type="text"),
          Variable(name="b", type="boolean")]
    assert resolve_initial_values(vs) == {"n": 0, "t": "", "b": False}
    assert zero_value("boolean") is False

def test_stored_default_is_not_mutated():
    vs = _weight()
    resolve_initial_values(vs, {"weight": 9})
    assert vs[0].value == 5

def test_non_mapping_source_degrades_to_defaults():
    assert resolve_initial_values(_weight(), ["weight", 9]) == {"x": 5}
