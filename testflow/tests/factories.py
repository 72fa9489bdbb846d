# testflow/tests/factories.py
"""Shared payloads and sub-test keys for the workflow tests."""
from typing import Any, Dict

CHEM = "Chemical - Carbon content"
MECH = "Mechanical - Tensile"

BASE_DRAFT: Dict[str, Any] = {
    "client_name": "Acme Steel",
    "contact_no": "9876543210",
    "email": "qa@acme.example",
    "address": "Plot 4, MIDC, Pune",
    "request_date": "2024-05-14",
    "test_methods": "yes",
    "laboratory_capability": "yes",
    "sub_tests": [
        {
            "material": "TMT Bar",
            "material_id": "M-1",
            "test_date": "2024-05-15",
            "quantity": "3",
            "test_type": CHEM,
            "measurements": [{"test": "Carbon", "standard": "IS 1786"}],
        },
        {
            "material": "TMT Bar",
            "material_id": "M-1",
            "test_date": "2024-05-15",
            "quantity": "3",
            "test_type": MECH,
            "measurements": [{"test": "Yield strength", "standard": "IS 1608"}],
        },
    ],
}

CHEM_KEY = ("ATL/24/05/1", CHEM, "TMT Bar")
MECH_KEY = ("ATL/24/05/1", MECH, "TMT Bar")


def key_payload(key) -> Dict[str, str]:
    atl_id, test_type, material = key
    return {"atl_id": atl_id, "test_type": test_type, "material": material}
