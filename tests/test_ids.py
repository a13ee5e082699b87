from fcalc.ids import ID_ALPHABET, generate_id, is_valid_identifier

def test_generate_id_default_length_and_alphabet():
    cid = generate_id()
    assert len(cid) == 8
    assert all(ch in ID_ALPHABET for ch in cid)
    assert len(ID_ALPHABET) == 62

def test_generate_id_custom_length():
    assert len(generate_id(4)) == 4
    assert generate_id(0) == ""

def test_valid_identifiers():
    assert is_valid_identifier("foo_1")
    assert is_valid_identifier("_x")
    assert is_valid_identifier("A")

def test_invalid_identifiers():
    assert not is_valid_identifier("1foo")
    assert not is_valid_identifier("")
    assert not is_valid_identifier("foo-bar")
    assert not is_valid_identifier("foo bar")
    assert not is_valid_identifier("foo\n")
    assert not is_valid_identifier(None)
