"""Core orchestration logic for the salon booking platform."""

from __future__ import annotations

import datetime as dt
import logging
import math
import re
from collections import defaultdict
from typing import Any, Callable, Iterable, Mapping

from .database import Database

log = logging.getLogger(__name__)

GENDERS = ("Male", "Female", "Other")
PAYMENT_STATUSES = ("pending", "success", "failed")
TOP_SERVICES_PER_ARTIST = 5

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:$|[T ])")
_END_OF_DAY = dt.time(23, 59, 59, 999000)


class ValidationError(RuntimeError):
    """Raised when incoming data fails validation."""


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""

    return int(math.floor(value + 0.5))


def plain_number(value: float | int | None) -> float | int:
    """Return ``value`` as an int when it has no fractional part."""

    if value is None:
        return 0
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def parse_date(value: str | dt.date, field: str = "date") -> dt.date:
    """Parse a local calendar date; only the ``YYYY-MM-DD`` part is used."""

    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    match = _DATE_RE.match(str(value).strip())
    if match:
        try:
            return dt.date(*(int(part) for part in match.groups()))
        except ValueError:
            pass
    raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")


def minutes_of_day(value: str) -> int:
    match = _TIME_RE.match(value or "")
    if not match:
        raise ValidationError(f"Invalid time of day: {value!r} (expected HH:MM)")
    return int(match.group(1)) * 60 + int(match.group(2))


def calc_hours(start_time: str, end_time: str) -> float:
    """Hours between two ``HH:MM`` times, never negative."""

    diff = minutes_of_day(end_time) - minutes_of_day(start_time)
    return max(diff / 60, 0)


def resolve_date_range(
    date_from: str | dt.date | None,
    date_to: str | dt.date | None,
    *,
    today: dt.date | None = None,
) -> tuple[dt.date, dt.date]:
    """Return the inclusive ``(from, to)`` range, defaulting to month-to-date."""

    today = today or dt.date.today()
    start = parse_date(date_from, "from") if date_from else today.replace(day=1)
    end = parse_date(date_to, "to") if date_to else today
    return start, end


def coerce_number(
    value: Any,
    field: str,
    *,
    minimum: float | None = 0,
    maximum: float | None = None,
    default: float | None = None,
) -> float:
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number") from None
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a number")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum:g}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be at most {maximum:g}")
    return number


def _text(value: Any, field: str, *, required: bool = False) -> str | None:
    text = str(value).strip() if value is not None else ""
    if not text:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    return text


def _group_services(visits: Iterable[Mapping[str, Any]]) -> dict[str, dict]:
    stats: dict[str, dict] = {}
    for visit in visits:
        for service in visit["services"]:
            entry = stats.setdefault(service["name"], {"count": 0, "revenue": 0.0})
            entry["count"] += 1
            entry["revenue"] += service["price"]
    return stats


def _rank_services(stats: Mapping[str, dict]) -> list[dict]:
    ranked = sorted(stats.items(), key=lambda item: (-item[1]["count"], item[0]))
    return [
        {"service": name, "count": data["count"], "revenue": plain_number(data["revenue"])}
        for name, data in ranked
    ]


class SalonSystem:
    """High level façade over the visit store and its analytics."""

    def __init__(
        self,
        db_path: str = ":memory:",
        *,
        database: Database | None = None,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self.db = database or Database(db_path)
        self.today = today

    @property
    def conn(self):
        return self.db.connect()

    def ensure_connected(self) -> None:
        self.db.connect()

    def date_range(
        self, date_from: str | dt.date | None = None, date_to: str | dt.date | None = None
    ) -> tuple[dt.date, dt.date]:
        return resolve_date_range(date_from, date_to, today=self.today())

    # ------------------------------------------------------------------
    # Visits
    # ------------------------------------------------------------------
    def record_visit(
        self,
        *,
        name: str,
        contact: str,
        date: str | dt.date,
        start_time: str,
        end_time: str,
        artist: str,
        services: Iterable[Mapping[str, Any]],
        subtotal: float,
        final_total: float,
        age: int | None = None,
        gender: str | None = None,
        service_type: str | None = None,
        filled_by: str | None = None,
        discount_percent: float = 0,
        discount_amount: float = 0,
        payment_status: str = "pending",
        razorpay_payment_id: str | None = None,
    ) -> dict:
        name = _text(name, "name", required=True)
        contact = _text(contact, "contact", required=True)
        artist = _text(artist, "artist", required=True)
        visit_date = parse_date(date)
        start_time = (start_time or "").strip()
        end_time = (end_time or "").strip()
        minutes_of_day(start_time)
        minutes_of_day(end_time)

        if age is not None and age != "":
            if isinstance(age, bool):
                raise ValidationError("age must be a whole number")
            try:
                age = int(age)
            except (TypeError, ValueError):
                raise ValidationError("age must be a whole number") from None
            if not 1 <= age <= 120:
                raise ValidationError("age must be between 1 and 120")
        else:
            age = None

        gender = _text(gender, "gender")
        if gender is not None and gender not in GENDERS:
            raise ValidationError(f"gender must be one of {', '.join(GENDERS)}")
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"payment_status must be one of {', '.join(PAYMENT_STATUSES)}")

        lines = []
        for service in services or []:
            service_name = _text(service.get("name"), "service name", required=True)
            lines.append((service_name, coerce_number(service.get("price"), "service price")))

        params = (
            name,
            contact,
            age,
            gender,
            visit_date.isoformat(),
            start_time,
            end_time,
            artist,
            _text(service_type, "service_type"),
            _text(filled_by, "filled_by"),
            coerce_number(subtotal, "subtotal"),
            coerce_number(discount_percent, "discount_percent", maximum=100, default=0),
            coerce_number(discount_amount, "discount_amount", default=0),
            coerce_number(final_total, "final_total"),
            payment_status,
            _text(razorpay_payment_id, "razorpay_payment_id"),
        )
        with self.db.lock:
            conn = self.conn
            cur = conn.execute(
                """
                INSERT INTO visits(
                    name, contact, age, gender, date, start_time, end_time, artist,
                    service_type, filled_by, subtotal, discount_percent, discount_amount,
                    final_total, payment_status, razorpay_payment_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                params,
            )
            visit_id = cur.lastrowid
            conn.executemany(
                "INSERT INTO visit_services(visit_id, position, name, price) VALUES (?, ?, ?, ?)",
                [(visit_id, position, line_name, price) for position, (line_name, price) in enumerate(lines)],
            )
            conn.commit()
        return self.get_visit(visit_id)

    def get_visit(self, visit_id: int) -> dict:
        with self.db.lock:
            row = self.conn.execute("SELECT * FROM visits WHERE id = ?", (visit_id,)).fetchone()
            if not row:
                raise ValidationError("Visit not found")
            row["services"] = self.conn.execute(
                "SELECT name, price FROM visit_services WHERE visit_id = ? ORDER BY position",
                (visit_id,),
            ).fetchall()
        return row

    def list_visits(
        self,
        *,
        date_from: str | dt.date | None = None,
        date_to: str | dt.date | None = None,
        artist: str | None = None,
    ) -> list[dict]:
        """Return visits in the range, newest first, each with its service lines."""

        start, end = self.date_range(date_from, date_to)
        where = "visits.date >= ? AND visits.date <= ?"
        params: list[Any] = [start.isoformat(), end.isoformat()]
        if artist is not None:
            where += " AND visits.artist = ?"
            params.append(artist)
        with self.db.lock:
            visits = self.conn.execute(
                f"SELECT * FROM visits WHERE {where} ORDER BY date DESC, id DESC",
                params,
            ).fetchall()
            lines = self.conn.execute(
                f"""
                SELECT visit_services.visit_id, visit_services.name, visit_services.price
                FROM visit_services
                JOIN visits ON visits.id = visit_services.visit_id
                WHERE {where}
                ORDER BY visit_services.visit_id, visit_services.position
                """,
                params,
            ).fetchall()
        by_visit = defaultdict(list)
        for line in lines:
            by_visit[line["visit_id"]].append({"name": line["name"], "price": line["price"]})
        for visit in visits:
            visit["services"] = by_visit.get(visit["id"], [])
        return visits

    def clear_visits(self) -> int:
        with self.db.lock:
            cur = self.conn.execute("DELETE FROM visits")
            self.conn.commit()
        log.info("Deleted %s visits", cur.rowcount)
        return cur.rowcount

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------
    def summary(
        self, *, date_from: str | dt.date | None = None, date_to: str | dt.date | None = None
    ) -> dict:
        start, end = self.date_range(date_from, date_to)
        visits = self.list_visits(date_from=start, date_to=end)
        total_revenue = sum(visit["final_total"] or 0 for visit in visits)
        total_visits = len(visits)
        return {
            "totalRevenue": plain_number(total_revenue),
            "totalVisits": total_visits,
            "uniqueCustomers": len({visit["contact"] for visit in visits}),
            "avgTicket": round_half_up(total_revenue / total_visits) if total_visits else 0,
            "from": dt.datetime.combine(start, dt.time.min).isoformat(timespec="milliseconds"),
            "to": dt.datetime.combine(end, _END_OF_DAY).isoformat(timespec="milliseconds"),
        }

    def top_services(
        self, *, date_from: str | dt.date | None = None, date_to: str | dt.date | None = None
    ) -> list[dict]:
        start, end = self.date_range(date_from, date_to)
        with self.db.lock:
            rows = self.conn.execute(
                """
                SELECT visit_services.name AS service,
                       COUNT(*) AS count,
                       SUM(visit_services.price) AS revenue
                FROM visit_services
                JOIN visits ON visits.id = visit_services.visit_id
                WHERE visits.date >= ? AND visits.date <= ?
                GROUP BY visit_services.name
                ORDER BY count DESC, service ASC
                """,
                (start.isoformat(), end.isoformat()),
            ).fetchall()
        for row in rows:
            row["revenue"] = plain_number(row["revenue"])
        return rows

    def employee_leaderboard(
        self, *, date_from: str | dt.date | None = None, date_to: str | dt.date | None = None
    ) -> list[dict]:
        visits = self.list_visits(date_from=date_from, date_to=date_to)
        grouped: dict[str, dict] = {}
        for visit in visits:
            entry = grouped.setdefault(
                visit["artist"],
                {"visits": 0, "revenue": 0.0, "hours": 0.0, "contacts": set()},
            )
            entry["visits"] += 1
            entry["revenue"] += visit["final_total"] or 0
            entry["hours"] += calc_hours(visit["start_time"], visit["end_time"])
            entry["contacts"].add(visit["contact"])

        board = [
            {
                "name": artist,
                "customersServed": data["visits"],
                "uniqueCustomers": len(data["contacts"]),
                "revenue": round_half_up(data["revenue"]),
                "hoursWorked": round_half_up(data["hours"] * 10) / 10,
            }
            for artist, data in grouped.items()
        ]
        board.sort(key=lambda row: (-row["revenue"], row["name"]))
        return [{"rank": position, **row} for position, row in enumerate(board, start=1)]

    def employee_detail(
        self,
        name: str,
        *,
        date_from: str | dt.date | None = None,
        date_to: str | dt.date | None = None,
    ) -> dict:
        all_visits = self.list_visits(date_from=date_from, date_to=date_to)
        visits = [visit for visit in all_visits if visit["artist"] == name]
        if not visits:
            return {
                "name": name,
                "customersServed": 0,
                "uniqueCustomers": 0,
                "revenue": 0,
                "hoursWorked": 0,
                "avgRevenuePerVisit": 0,
                "topServices": [],
                "rank": 0,
                "totalArtists": 0,
            }

        revenue = sum(visit["final_total"] or 0 for visit in visits)
        hours = sum(calc_hours(visit["start_time"], visit["end_time"]) for visit in visits)

        peers: dict[str, float] = defaultdict(float)
        for visit in all_visits:
            peers[visit["artist"]] += visit["final_total"] or 0
        ordering = sorted(peers.items(), key=lambda item: (-item[1], item[0]))
        rank = [artist for artist, _ in ordering].index(name) + 1

        return {
            "name": name,
            "customersServed": len(visits),
            "uniqueCustomers": len({visit["contact"] for visit in visits}),
            "revenue": round_half_up(revenue),
            "hoursWorked": round_half_up(hours * 10) / 10,
            "avgRevenuePerVisit": round_half_up(revenue / len(visits)),
            "topServices": _rank_services(_group_services(visits))[:TOP_SERVICES_PER_ARTIST],
            "rank": rank,
            "totalArtists": len(ordering),
        }

    def repeat_customers(
        self, *, date_from: str | dt.date | None = None, date_to: str | dt.date | None = None
    ) -> dict:
        start, end = self.date_range(date_from, date_to)
        with self.db.lock:
            row = self.conn.execute(
                """
                SELECT COUNT(*) AS total_customers,
                       SUM(CASE WHEN visits > 1 THEN 1 ELSE 0 END) AS repeat_customers,
                       SUM(CASE WHEN visits = 1 THEN 1 ELSE 0 END) AS new_customers
                FROM (
                    SELECT contact, COUNT(*) AS visits
                    FROM visits
                    WHERE date >= ? AND date <= ?
                    GROUP BY contact
                )
                """,
                (start.isoformat(), end.isoformat()),
            ).fetchone()
        total = row["total_customers"] or 0
        repeat = row["repeat_customers"] or 0
        return {
            "totalCustomers": total,
            "repeatCustomers": repeat,
            "newCustomers": row["new_customers"] or 0,
            "repeatRate": round(repeat / total * 100, 1) if total else 0,
        }

    def close(self) -> None:
        self.db.close()
