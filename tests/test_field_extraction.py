from src.taskstream.services.field_extraction import flatten


def test_fields_object_takes_priority_and_drops_siblings():
    data = {
        "fields": {"firstName": "John", "lastName": "Smith"},
        "validation": {"allRequiredFieldsFound": True},
        "documentType": "passport",
    }
    assert flatten(data) == {"firstName": "John", "lastName": "Smith"}


def test_metadata_keys_are_filtered():
    assert flatten({"firstName": "Maria", "confidence": 0.95}) == {"firstName": "Maria"}


def test_nested_objects_use_dotted_paths():
    data = {
        "personalInfo": {"firstName": "Ahmed", "lastName": "Hassan"},
        "verification": {"status": "verified", "timestamp": "2024-01-15T10:30:00Z"},
    }
    assert flatten(data) == {
        "personalInfo.firstName": "Ahmed",
        "personalInfo.lastName": "Hassan",
        "verification.status": "verified",
    }


def test_nested_fields_object_merges_unprefixed():
    data = {"document": {"fields": {"number": "X123"}, "issuer": "ignored"}, "country": "NL"}
    assert flatten(data) == {"number": "X123", "country": "NL"}


def test_nulls_skipped_and_arrays_kept_opaque():
    data = {"middleName": None, "aliases": ["Jo", "Johnny"], "address": {"lines": [{"a": 1}]}}
    assert flatten(data) == {"aliases": ["Jo", "Johnny"], "address.lines": [{"a": 1}]}


def test_flatten_is_total_and_deterministic():
    for value in (None, 3, "text", [1, 2], True):
        assert flatten(value) == {}
    data = {"b": {"c": 1}, "a": 2}
    assert flatten(data) == flatten(dict(data))
    assert list(flatten(data)) == ["b.c", "a"]


def test_metadata_keys_filtered_at_every_depth():
    data = {"person": {"name": "Ana", "metadata": {"source": "ocr"}, "processedAt": "now"}}
    assert flatten(data) == {"person.name": "Ana"}
