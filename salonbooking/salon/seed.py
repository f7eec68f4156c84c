"""Generate realistic salon visits for development and demos."""

from __future__ import annotations

import datetime as dt
import logging
import random
import string

from . import catalogue
from .system import SalonSystem, round_half_up

log = logging.getLogger(__name__)

CUSTOMERS = [
    ("Aarav Sharma", "9876543210", 28, "Male"),
    ("Ishita Patel", "9876543211", 24, "Female"),
    ("Rohan Gupta", "9876543212", 35, "Male"),
    ("Ananya Singh", "9876543213", 22, "Female"),
    ("Kabir Mehta", "9876543214", 30, "Male"),
    ("Diya Joshi", "9876543215", 27, "Female"),
    ("Arjun Reddy", "9876543216", 40, "Male"),
    ("Meera Nair", "9876543217", 33, "Female"),
    ("Vivaan Kumar", "9876543218", 26, "Male"),
    ("Pooja Verma", "9876543219", 29, "Female"),
    ("Aditya Rao", "9876543220", 31, "Male"),
    ("Neha Iyer", "9876543221", 25, "Female"),
    ("Siddharth Das", "9876543222", 38, "Male"),
    ("Kavya Bhat", "9876543223", 21, "Female"),
    ("Manish Tiwari", "9876543224", 45, "Male"),
    ("Ritu Agarwal", "9876543225", 34, "Female"),
    ("Deepak Mishra", "9876543226", 50, "Male"),
    ("Simran Kaur", "9876543227", 23, "Female"),
    ("Rajesh Pandey", "9876543228", 42, "Male"),
    ("Anjali Desai", "9876543229", 36, "Female"),
]

DISCOUNTS = [5, 10, 15, 20]
CLOSING_HOUR = 20


def generate_visit(rng: random.Random, *, today: dt.date, days: int = 90) -> dict:
    """Return keyword arguments for :meth:`SalonSystem.record_visit`."""

    name, contact, age, gender = rng.choice(CUSTOMERS)
    services = [
        {"name": service_name, "price": price}
        for service_name, price in rng.sample(catalogue.SERVICES, rng.randint(1, 4))
    ]
    subtotal = sum(service["price"] for service in services)
    discount_percent = rng.choice(DISCOUNTS) if rng.random() < 0.3 else 0
    discount_amount = round_half_up(subtotal * discount_percent / 100)

    start_hour = rng.randint(9, 17)
    start_minute = rng.choice((0, 30))
    duration = 30 * rng.randint(1, 4)
    end_total = min(start_hour * 60 + start_minute + duration, CLOSING_HOUR * 60)
    paid = rng.random() < 0.9
    payment_id = "pay_" + "".join(rng.choices(string.ascii_letters + string.digits, k=14))

    return {
        "name": name,
        "contact": contact,
        "age": age,
        "gender": gender,
        "date": today - dt.timedelta(days=rng.randrange(max(days, 1))),
        "start_time": f"{start_hour:02d}:{start_minute:02d}",
        "end_time": f"{end_total // 60:02d}:{end_total % 60:02d}",
        "artist": rng.choice(catalogue.ARTISTS),
        "service_type": rng.choice(catalogue.SERVICE_TYPES),
        "services": services,
        "filled_by": rng.choice(catalogue.STAFF),
        "subtotal": subtotal,
        "discount_percent": discount_percent,
        "discount_amount": discount_amount,
        "final_total": subtotal - discount_amount,
        "payment_status": "success" if paid else "pending",
        "razorpay_payment_id": payment_id if paid else None,
    }


def seed_visits(
    system: SalonSystem,
    *,
    count: int = 150,
    days: int = 90,
    reset: bool = False,
    rng: random.Random | None = None,
) -> list[dict]:
    rng = rng or random.Random()
    if reset:
        system.clear_visits()
    today = system.today()
    visits = [
        system.record_visit(**generate_visit(rng, today=today, days=days)) for _ in range(count)
    ]
    log.info("Inserted %s visits", len(visits))
    return visits
