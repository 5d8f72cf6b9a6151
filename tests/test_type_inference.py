"""
Tests for property definitions and type inference.

Tests cover:
1. Property aliases and identity rules
2. Template data type -> extraction type mapping
3. Value validation per extraction type
4. Value conversion per extraction type
"""

import pytest
from pydantic import ValidationError

from property_pipeline.parse.models import ExtractionType, Property
from property_pipeline.validate.type_inference import TypeInferencer


class TestProperty:
    """Tests for the Property model."""

    def test_data_type_alias(self):
        """Test that dataType populates data_type."""
        prop = Property.model_validate({"label": "Accuracy", "dataType": "number"})
        assert prop.data_type == "number"

    def test_type_alias(self):
        """Test that a plain type key populates data_type."""
        prop = Property.model_validate({"id": "P1", "type": "url"})
        assert prop.data_type == "url"

    def test_field_name(self):
        """Test that the Python field name is accepted too."""
        prop = Property(label="Accuracy", data_type="number")
        assert prop.data_type == "number"

    def test_default_type_is_text(self):
        """Test the default data type."""
        assert Property(label="Method").data_type == "text"

    def test_key_prefers_label(self):
        """Test that the output key is the label, falling back to the id."""
        assert Property(id="P1", label="Accuracy").key == "Accuracy"
        assert Property(id="P1").key == "P1"

    def test_owner_id_prefers_id(self):
        """Test that pool ownership is recorded under the id when present."""
        assert Property(id="P1", label="Accuracy").owner_id == "P1"
        assert Property(label="Accuracy").owner_id == "Accuracy"

    def test_requires_identity(self):
        """Test that a property needs an id or a label."""
        with pytest.raises(ValidationError):
            Property(description="No name")

    def test_coerce(self):
        """Test coercion from a mapping and passthrough of a model."""
        prop = Property(label="Accuracy")
        assert Property.coerce(prop) is prop
        assert Property.coerce({"label": "Accuracy"}).key == "Accuracy"


class TestInferFromTemplate:
    """Tests for TypeInferencer.infer_from_template."""

    def test_integer_maps_to_number(self):
        """Test that integer templates are numbers."""
        inferencer = TypeInferencer()
        assert inferencer.infer_from_template({"dataType": "integer"}) == "number"
        assert inferencer.infer_from_template({"dataType": "integer"}) == ExtractionType.NUMBER

    def test_unknown_maps_to_text(self):
        """Test that unknown types fall back to text."""
        inferencer = TypeInferencer()
        assert inferencer.infer_from_template({"dataType": "unknown_type"}) == "text"

    @pytest.mark.parametrize("declared,expected", [
        ("resource", ExtractionType.TEXT),
        ("string", ExtractionType.TEXT),
        ("float", ExtractionType.NUMBER),
        ("date", ExtractionType.DATE),
        ("boolean", ExtractionType.BOOLEAN),
        ("url", ExtractionType.URL),
    ])
    def test_template_types(self, declared, expected):
        """Test each known template type."""
        inferencer = TypeInferencer()
        assert inferencer.infer_from_template({"dataType": declared}) == expected

    def test_case_and_whitespace_insensitive(self):
        """Test that declared types are normalized before lookup."""
        inferencer = TypeInferencer()
        assert inferencer.infer_from_template(Property(label="x", data_type=" Date ")) == ExtractionType.DATE

    def test_missing_type(self):
        """Test that a missing type or property means text."""
        inferencer = TypeInferencer()
        assert inferencer.infer_from_template({}) == ExtractionType.TEXT
        assert inferencer.infer_from_template(None) == ExtractionType.TEXT

    def test_accepts_type_key(self):
        """Test that mappings using a type key are understood."""
        inferencer = TypeInferencer()
        assert inferencer.infer_from_template({"type": "url"}) == ExtractionType.URL


class TestValidateValue:
    """Tests for TypeInferencer.validate_value."""

    def test_numbers(self):
        """Test number validation."""
        inferencer = TypeInferencer()
        assert inferencer.validate_value("95.3", ExtractionType.NUMBER) is True
        assert inferencer.validate_value("-12", "number") is True
        assert inferencer.validate_value(42, "number") is True
        assert inferencer.validate_value("95.3%", "number") is False
        assert inferencer.validate_value("abc", "number") is False

    def test_dates(self):
        """Test date validation."""
        inferencer = TypeInferencer()
        assert inferencer.validate_value("2021-03-15", "date") is True
        assert inferencer.validate_value("3/15/2021", "date") is True
        assert inferencer.validate_value("March 15, 2021", "date") is True
        assert inferencer.validate_value("2021", "date") is True
        assert inferencer.validate_value("last year", "date") is False

    def test_urls(self):
        """Test URL validation."""
        inferencer = TypeInferencer()
        assert inferencer.validate_value("https://example.org/paper", "url") is True
        assert inferencer.validate_value("example.org", "url") is False

    def test_booleans(self):
        """Test boolean validation."""
        inferencer = TypeInferencer()
        assert inferencer.validate_value("Yes", "boolean") is True
        assert inferencer.validate_value("false", "boolean") is True
        assert inferencer.validate_value("maybe", "boolean") is False

    def test_text_accepts_anything_non_empty(self):
        """Test that text accepts any non-empty value."""
        inferencer = TypeInferencer()
        assert inferencer.validate_value("ImageNet", "text") is True
        assert inferencer.validate_value("", "text") is False
        assert inferencer.validate_value(None, "text") is False


class TestConvertValue:
    """Tests for TypeInferencer.convert_value."""

    def test_integers(self):
        """Test that whole numbers become int."""
        inferencer = TypeInferencer()
        result = inferencer.convert_value("42", ExtractionType.NUMBER)
        assert result == 42
        assert isinstance(result, int)

    def test_floats(self):
        """Test that decimals become float."""
        inferencer = TypeInferencer()
        assert inferencer.convert_value("-3.5", "number") == -3.5
        assert inferencer.convert_value("1.", "number") == 1.0

    def test_unconvertible_number(self):
        """Test that non-numeric text gives None."""
        inferencer = TypeInferencer()
        assert inferencer.convert_value("abc", "number") is None

    def test_booleans(self):
        """Test truthy and falsy strings."""
        inferencer = TypeInferencer()
        assert inferencer.convert_value("yes", "boolean") is True
        assert inferencer.convert_value("TRUE", "boolean") is True
        assert inferencer.convert_value("no", "boolean") is False

    def test_text_is_trimmed(self):
        """Test that text values are trimmed strings."""
        inferencer = TypeInferencer()
        assert inferencer.convert_value("  padded  ", "text") == "padded"
        assert inferencer.convert_value("2021-03-15", "date") == "2021-03-15"

    def test_empty_values(self):
        """Test that empty or blank values give None."""
        inferencer = TypeInferencer()
        assert inferencer.convert_value(None, "text") is None
        assert inferencer.convert_value("", "text") is None
        assert inferencer.convert_value("   ", "text") is None
