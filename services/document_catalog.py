import logging
from typing import Any, Dict, List

from use_cases.errors import StorageError, ValidationError

log = logging.getLogger(__name__)

# Documents offered by the barangay office
DEFAULT_DOCUMENT_TYPES: List[Dict[str, Any]] = [
    {
        "name": "Barangay Clearance",
        "description": "Certificate of good standing in the barangay",
        "requirements": ["Valid ID", "Proof of residency", "1x1 ID picture", "Barangay residency certificate"],
        "fee": 50,
        "processing_time": "1-2 business days",
    },
    {
        "name": "Certificate of Indigency",
        "description": "Certificate for low-income families",
        "requirements": ["Valid ID", "Proof of residency", "Income statement or affidavit", "1x1 ID picture"],
        "fee": 0,
        "processing_time": "2-3 business days",
    },
    {
        "name": "Business Permit",
        "description": "Permit to operate a business in the barangay",
        "requirements": [
            "Valid ID",
            "Business registration documents",
            "Barangay clearance",
            "Location sketch",
            "Fire safety inspection certificate",
        ],
        "fee": 500,
        "processing_time": "5-7 business days",
    },
    {
        "name": "Certificate of Residency",
        "description": "Proof of residence in the barangay",
        "requirements": ["Valid ID", "Proof of address", "1x1 ID picture", "Affidavit of residency"],
        "fee": 30,
        "processing_time": "1-2 business days",
    },
    {
        "name": "Barangay ID",
        "description": "Official barangay identification card",
        "requirements": [
            "Valid government ID",
            "Proof of residency",
            "2x2 ID picture",
            "Voter's registration (if applicable)",
        ],
        "fee": 100,
        "processing_time": "3-5 business days",
    },
]


def validate_document_type(data: Dict[str, Any]) -> Dict[str, Any]:
    """Check a catalog entry and return it normalized for storage."""
    errors = {}
    name = str(data.get("name") or "").strip()
    description = str(data.get("description") or "").strip()
    requirements = [str(r).strip() for r in (data.get("requirements") or []) if str(r).strip()]
    processing_time = str(data.get("processing_time") or "").strip()
    try:
        fee = float(data.get("fee", 0))
    except (TypeError, ValueError):
        fee = -1.0

    if len(name) < 3:
        errors["name"] = "Document name must be at least 3 characters"
    if len(description) < 10:
        errors["description"] = "Description must be at least 10 characters"
    if not requirements:
        errors["requirements"] = "At least one requirement is needed"
    if fee < 0:
        errors["fee"] = "Fee cannot be negative"
    if not processing_time:
        errors["processing_time"] = "Processing time is required"
    if errors:
        raise ValidationError(f"Invalid document type {name or '(unnamed)'}", errors)

    return {
        "name": name,
        "description": description,
        "requirements": requirements,
        "fee": fee,
        "processing_time": processing_time,
        "is_active": bool(data.get("is_active", True)),
    }


def seed_document_types(record_store, catalog: List[Dict[str, Any]] = None) -> int:
    """Insert catalog entries missing by name. Returns how many were added."""
    existing = {row["name"] for row in record_store.select("document_types")}
    added = 0
    for entry in catalog if catalog is not None else DEFAULT_DOCUMENT_TYPES:
        row = validate_document_type(entry)
        if row["name"] in existing:
            continue
        try:
            record_store.insert("document_types", row)
        except StorageError as e:
            if not e.conflict:
                raise
            log.info(f"Document type {row['name']} was seeded concurrently")
            continue
        existing.add(row["name"])
        added += 1
    if added:
        log.info(f"Seeded {added} document type(s)")
    return added
