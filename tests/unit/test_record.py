"""
Unit tests for the Record container
"""

import pytest
from models.record import Record


class TestRecord:
    """Test record field handling"""

    def test_preserves_insertion_order(self):
        """Test fields iterate in the order they were put"""
        record = Record()
        record.put("b", 1)
        record.put("a", 2)

        assert list(record) == ["b", "a"]

    def test_last_write_wins(self):
        """Test re-putting a field replaces its value"""
        record = Record(id=1)
        record.put("id", 2)

        assert record["id"] == 2
        assert len(record) == 1

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_rejects_blank_field_names(self, name):
        """Test blank field names are refused"""
        with pytest.raises(ValueError):
            Record().put(name, 1)

    def test_structural_equality(self):
        """Test records with the same fields are equal"""
        assert Record({"id": 7, "amount": 19.5}) == Record(id=7, amount=19.5)
        assert Record(id=7) != Record(id=8)

    def test_as_dict_is_a_copy(self):
        """Test as_dict does not expose the internal mapping"""
        record = Record(id=1)
        params = record.as_dict()
        params["id"] = 99

        assert record["id"] == 1

    def test_lenient_accessors(self):
        """Test typed accessors return None instead of raising"""
        record = Record(count="12", price=" 3.5 ", name="abc", flag=True, missing=None)

        assert record.get_int("count") == 12
        assert record.get_float("price") == 3.5
        assert record.get_int("name") is None
        assert record.get_float("name") is None
        assert record.get_int("flag") is None
        assert record.get_string("missing") is None
        assert record.get_string("count") == "12"
        assert record.get_int("absent") is None
