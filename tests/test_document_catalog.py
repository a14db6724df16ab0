import pytest

from services import document_catalog
from use_cases.errors import ValidationError


def test_seed_is_idempotent(record_store):
    added = document_catalog.seed_document_types(record_store)
    assert added == len(document_catalog.DEFAULT_DOCUMENT_TYPES)
    assert document_catalog.seed_document_types(record_store) == 0

    names = {row["name"] for row in record_store.select("document_types")}
    assert "Certificate of Indigency" in names
    assert len(names) == 5


def test_seed_keeps_free_documents(record_store):
    document_catalog.seed_document_types(record_store)
    indigency = record_store.select("document_types", {"name": "Certificate of Indigency"})[0]
    assert indigency["fee"] == 0
    assert indigency["requirements"][0] == "Valid ID"


def test_validate_document_type_normalizes():
    row = document_catalog.validate_document_type({
        "name": "  Cedula ",
        "description": "Community tax certificate",
        "requirements": ["Valid ID", " ", "Proof of income"],
        "fee": "25",
        "processing_time": "Same day",
    })
    assert row["name"] == "Cedula"
    assert row["requirements"] == ["Valid ID", "Proof of income"]
    assert row["fee"] == 25.0
    assert row["is_active"] is True


def test_validate_document_type_errors():
    with pytest.raises(ValidationError) as excinfo:
        document_catalog.validate_document_type({"name": "ID", "fee": -5})
    assert set(excinfo.value.errors) == {"name", "description", "requirements", "fee", "processing_time"}
