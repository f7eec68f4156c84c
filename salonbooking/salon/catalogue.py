"""Static form-data catalogue served to the booking form.

Prices here are what the booking page uses to compute the payable amount.
"""

from __future__ import annotations

ARTISTS = ["Rahul", "Priya", "Amit", "Sneha", "Vikram"]

SERVICE_TYPES = ["Hair", "Skin", "Nails", "Grooming", "Bridal"]

STAFF = ["Rahul", "Priya", "Amit", "Sneha", "Vikram", "Owner"]

SERVICES = [
    ("Haircut (Men)", 300),
    ("Haircut (Women)", 500),
    ("Hair Color", 1500),
    ("Hair Spa", 800),
    ("Beard Trim", 150),
    ("Facial", 600),
    ("Head Massage", 200),
    ("Shaving", 100),
    ("Hair Straightening", 2500),
    ("Keratin Treatment", 4000),
    ("Manicure", 400),
    ("Pedicure", 500),
    ("Threading", 50),
    ("Waxing", 350),
    ("Bridal Makeup", 5000),
]


def _slug(value: str) -> str:
    return "".join(ch if ch.isalnum() else "-" for ch in value.lower()).strip("-").replace("--", "-")


def _items(names: list[str]) -> list[dict]:
    return [{"id": _slug(name), "name": name} for name in names]


def form_data() -> dict:
    """Return the dropdown options for the booking form."""

    return {
        "artists": _items(ARTISTS),
        "serviceTypes": _items(SERVICE_TYPES),
        "staff": _items(STAFF),
        "services": [
            {"id": _slug(name), "name": name, "price": price} for name, price in SERVICES
        ],
    }
