import datetime as dt
import random
import threading
import unittest

from salonbooking.salon import catalogue
from salonbooking.salon.database import (
    SCHEMA_VERSION,
    Database,
    DatabaseUnavailable,
    get_metadata,
    set_metadata,
)
from salonbooking.salon.seed import seed_visits
from salonbooking.salon.system import (
    SalonSystem,
    ValidationError,
    calc_hours,
    resolve_date_range,
    round_half_up,
)

TODAY = dt.date(2024, 3, 20)


def make_visit(**overrides) -> dict:
    visit = {
        "name": "Aarav Sharma",
        "contact": "9000000001",
        "age": 28,
        "gender": "Male",
        "date": "2024-03-01",
        "start_time": "10:00",
        "end_time": "11:30",
        "artist": "Priya",
        "service_type": "Hair",
        "services": [
            {"name": "Haircut (Men)", "price": 300},
            {"name": "Beard Trim", "price": 150},
        ],
        "filled_by": "Owner",
        "subtotal": 450,
        "final_total": 450,
        "payment_status": "success",
        "razorpay_payment_id": "pay_first",
    }
    visit.update(overrides)
    return visit


class SalonSystemTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.system = SalonSystem(today=lambda: TODAY)
        self.first = self.system.record_visit(**make_visit())
        self.second = self.system.record_visit(
            **make_visit(
                date="2024-03-10",
                start_time="09:00",
                end_time="10:00",
                artist="Rahul",
                services=[{"name": "Haircut (Men)", "price": 300}],
                subtotal=300,
                final_total=300,
            )
        )
        self.third = self.system.record_visit(
            **make_visit(
                name="Ishita Patel",
                contact="9000000002",
                gender="Female",
                date="2024-03-15",
                start_time="14:00",
                end_time="16:30",
                artist="Priya",
                services=[
                    {"name": "Hair Color", "price": 1500},
                    {"name": "Hair Spa", "price": 800},
                ],
                subtotal=2300,
                discount_percent=10,
                discount_amount=230,
                final_total=2070,
            )
        )
        self.outside = self.system.record_visit(
            **make_visit(
                name="Rohan Gupta",
                contact="9000000003",
                date="2024-02-28",
                start_time="11:00",
                end_time="12:00",
                artist="Rahul",
                services=[{"name": "Facial", "price": 600}],
                subtotal=600,
                final_total=600,
            )
        )
        self.last_day = self.system.record_visit(
            **make_visit(
                name="Ishita Patel",
                contact="9000000002",
                gender="Female",
                date="2024-03-20",
                start_time="18:00",
                end_time="17:00",
                artist="Amit",
                services=[{"name": "Threading", "price": 50}],
                subtotal=50,
                final_total=50,
                payment_status="pending",
                razorpay_payment_id=None,
            )
        )

    def tearDown(self) -> None:
        self.system.close()

    def test_record_and_fetch_visit(self) -> None:
        visit = self.system.get_visit(self.third["id"])
        self.assertEqual(visit["name"], "Ishita Patel")
        self.assertEqual(visit["date"], "2024-03-15")
        self.assertEqual(
            [service["name"] for service in visit["services"]], ["Hair Color", "Hair Spa"]
        )
        self.assertEqual(visit["discount_percent"], 10)
        self.assertIsNotNone(visit["created_at"])
        self.assertIsNotNone(visit["updated_at"])
        with self.assertRaises(ValidationError):
            self.system.get_visit(9999)

    def test_billing_is_not_cross_checked(self) -> None:
        visit = self.system.record_visit(
            **make_visit(subtotal=100, discount_percent=50, discount_amount=5, final_total=500)
        )
        self.assertEqual(visit["final_total"], 500)

    def test_record_visit_validation(self) -> None:
        invalid = [
            {"name": "  "},
            {"contact": ""},
            {"artist": None},
            {"age": 0},
            {"age": 121},
            {"age": "old"},
            {"gender": "Unknown"},
            {"date": "20/03/2024"},
            {"start_time": "9:00"},
            {"end_time": "24:00"},
            {"services": [{"name": "Facial", "price": -1}]},
            {"services": [{"price": 100}]},
            {"subtotal": -10},
            {"final_total": "abc"},
            {"discount_percent": 120},
            {"payment_status": "refunded"},
        ]
        for overrides in invalid:
            with self.subTest(overrides=overrides):
                with self.assertRaises(ValidationError):
                    self.system.record_visit(**make_visit(**overrides))

    def test_list_visits_default_range_newest_first(self) -> None:
        visits = self.system.list_visits()
        self.assertEqual(
            [visit["id"] for visit in visits],
            [self.last_day["id"], self.third["id"], self.second["id"], self.first["id"]],
        )
        priya = self.system.list_visits(artist="Priya")
        self.assertEqual({visit["id"] for visit in priya}, {self.first["id"], self.third["id"]})
        self.assertEqual(priya[-1]["services"][1]["name"], "Beard Trim")

    def test_summary_month_to_date(self) -> None:
        summary = self.system.summary()
        self.assertEqual(summary["totalRevenue"], 2870)
        self.assertEqual(summary["totalVisits"], 4)
        self.assertEqual(summary["uniqueCustomers"], 2)
        # 2870 / 4 = 717.5 rounds up
        self.assertEqual(summary["avgTicket"], 718)
        self.assertEqual(summary["from"], "2024-03-01T00:00:00.000")
        self.assertEqual(summary["to"], "2024-03-20T23:59:59.999")

    def test_summary_range_is_inclusive(self) -> None:
        summary = self.system.summary(date_from="2024-02-28", date_to="2024-03-01")
        self.assertEqual(summary["totalRevenue"], 1050)
        self.assertEqual(summary["totalVisits"], 2)

        single_day = self.system.summary(date_from="2024-03-20", date_to="2024-03-20")
        self.assertEqual(single_day["totalRevenue"], 50)

        # ISO timestamps only contribute their calendar date
        stamped = self.system.summary(
            date_from="2024-03-15T18:30:00.000Z", date_to="2024-03-15T00:00:00"
        )
        self.assertEqual(stamped["totalRevenue"], 2070)

        empty = self.system.summary(date_from="2024-03-21", date_to="2024-03-01")
        self.assertEqual(empty["totalVisits"], 0)
        self.assertEqual(empty["avgTicket"], 0)
        self.assertEqual(empty["totalRevenue"], 0)

        unpadded = self.system.summary(date_from="2024-2-28", date_to="2024-3-1")
        self.assertEqual(unpadded["totalRevenue"], 1050)
        self.assertEqual(unpadded["from"], "2024-02-28T00:00:00.000")

        for bad in ("yesterday", "2024-02-30", "2024/03/01", "24-3-1"):
            with self.subTest(date_from=bad):
                with self.assertRaises(ValidationError):
                    self.system.summary(date_from=bad)

    def test_top_services(self) -> None:
        services = self.system.top_services()
        self.assertEqual(
            services,
            [
                {"service": "Haircut (Men)", "count": 2, "revenue": 600},
                {"service": "Beard Trim", "count": 1, "revenue": 150},
                {"service": "Hair Color", "count": 1, "revenue": 1500},
                {"service": "Hair Spa", "count": 1, "revenue": 800},
                {"service": "Threading", "count": 1, "revenue": 50},
            ],
        )

    def test_employee_leaderboard(self) -> None:
        board = self.system.employee_leaderboard()
        self.assertEqual([row["name"] for row in board], ["Priya", "Rahul", "Amit"])
        self.assertEqual([row["rank"] for row in board], [1, 2, 3])
        priya = board[0]
        self.assertEqual(priya["customersServed"], 2)
        self.assertEqual(priya["uniqueCustomers"], 2)
        self.assertEqual(priya["revenue"], 2520)
        self.assertEqual(priya["hoursWorked"], 4.0)
        # End time before start time counts as zero hours
        self.assertEqual(board[2]["hoursWorked"], 0)

    def test_leaderboard_ranks_are_a_permutation(self) -> None:
        seed_visits(self.system, count=60, days=20, rng=random.Random(3))
        board = self.system.employee_leaderboard()
        self.assertEqual(sorted(row["rank"] for row in board), list(range(1, len(board) + 1)))
        revenues = [row["revenue"] for row in board]
        self.assertEqual(revenues, sorted(revenues, reverse=True))

    def test_employee_detail(self) -> None:
        detail = self.system.employee_detail("Priya")
        self.assertEqual(detail["customersServed"], 2)
        self.assertEqual(detail["revenue"], 2520)
        self.assertEqual(detail["avgRevenuePerVisit"], 1260)
        self.assertEqual(detail["hoursWorked"], 4.0)
        self.assertEqual(detail["rank"], 1)
        self.assertEqual(detail["totalArtists"], 3)
        self.assertEqual(
            [service["service"] for service in detail["topServices"]],
            ["Beard Trim", "Hair Color", "Hair Spa", "Haircut (Men)"],
        )
        self.assertEqual(self.system.employee_detail("Amit")["rank"], 3)

    def test_employee_detail_top_five_services(self) -> None:
        self.system.record_visit(
            **make_visit(
                artist="Sneha",
                date="2024-03-05",
                services=[{"name": name, "price": price} for name, price in catalogue.SERVICES[:6]],
                subtotal=5000,
                final_total=5000,
            )
        )
        detail = self.system.employee_detail("Sneha")
        self.assertEqual(len(detail["topServices"]), 5)
        self.assertEqual(detail["rank"], 1)
        self.assertEqual(detail["totalArtists"], 4)

    def test_employee_detail_unknown_artist(self) -> None:
        detail = self.system.employee_detail("Nobody")
        self.assertEqual(detail["name"], "Nobody")
        self.assertEqual(detail["customersServed"], 0)
        self.assertEqual(detail["revenue"], 0)
        self.assertEqual(detail["topServices"], [])
        self.assertEqual(detail["rank"], 0)
        self.assertEqual(detail["totalArtists"], 0)

    def test_repeat_customers(self) -> None:
        stats = self.system.repeat_customers(date_from="2024-02-01", date_to="2024-03-31")
        self.assertEqual(stats["totalCustomers"], 3)
        self.assertEqual(stats["repeatCustomers"], 2)
        self.assertEqual(stats["newCustomers"], 1)
        self.assertEqual(stats["repeatRate"], 66.7)

        empty = self.system.repeat_customers(date_from="2023-01-01", date_to="2023-01-31")
        self.assertEqual(
            empty,
            {"totalCustomers": 0, "repeatCustomers": 0, "newCustomers": 0, "repeatRate": 0},
        )

    def test_seed_visits(self) -> None:
        self.assertEqual(self.system.clear_visits(), 5)
        visits = seed_visits(self.system, count=25, days=30, rng=random.Random(11))
        self.assertEqual(len(visits), 25)
        prices = dict(catalogue.SERVICES)
        earliest = TODAY - dt.timedelta(days=29)
        for visit in visits:
            self.assertTrue(earliest.isoformat() <= visit["date"] <= TODAY.isoformat())
            self.assertTrue(1 <= len(visit["services"]) <= 4)
            for service in visit["services"]:
                self.assertEqual(service["price"], prices[service["name"]])
            self.assertEqual(visit["final_total"], visit["subtotal"] - visit["discount_amount"])
            self.assertIn(visit["artist"], catalogue.ARTISTS)
            if visit["payment_status"] == "success":
                self.assertTrue(visit["razorpay_payment_id"].startswith("pay_"))

        same_day = seed_visits(self.system, count=4, days=0, rng=random.Random(7))
        self.assertEqual({visit["date"] for visit in same_day}, {TODAY.isoformat()})

        reseeded = seed_visits(self.system, count=3, reset=True, rng=random.Random(2))
        self.assertEqual(len(reseeded), 3)
        self.assertEqual(
            len(self.system.list_visits(date_from="2000-01-01", date_to=TODAY)), 3
        )


class HelperTestCase(unittest.TestCase):
    def test_round_half_up(self) -> None:
        self.assertEqual(round_half_up(717.5), 718)
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(2.49), 2)

    def test_calc_hours(self) -> None:
        self.assertEqual(calc_hours("09:30", "11:00"), 1.5)
        self.assertEqual(calc_hours("11:00", "09:30"), 0)

    def test_resolve_date_range_defaults_to_month_to_date(self) -> None:
        start, end = resolve_date_range(None, None, today=dt.date(2024, 2, 29))
        self.assertEqual(start, dt.date(2024, 2, 1))
        self.assertEqual(end, dt.date(2024, 2, 29))
        start, end = resolve_date_range("2024-01-05", "", today=dt.date(2024, 2, 29))
        self.assertEqual(start, dt.date(2024, 1, 5))
        self.assertEqual(end, dt.date(2024, 2, 29))


class DatabaseTestCase(unittest.TestCase):
    def test_connection_is_opened_lazily_and_shared(self) -> None:
        database = Database(":memory:")
        self.assertFalse(database.connected)
        handles = []

        def worker() -> None:
            handles.append(database.connect())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(handles), 8)
        self.assertTrue(all(handle is handles[0] for handle in handles))
        database.close()
        self.assertFalse(database.connected)

    def test_unreachable_store_raises_and_allows_retry(self) -> None:
        database = Database("/nonexistent-directory/salon.db")
        with self.assertRaises(DatabaseUnavailable):
            database.connect()
        self.assertFalse(database.connected)
        with self.assertRaises(DatabaseUnavailable):
            database.connect()

    def test_schema_version_is_recorded(self) -> None:
        database = Database(":memory:")
        conn = database.connect()
        self.assertEqual(get_metadata(conn, "schema_version"), str(SCHEMA_VERSION))
        set_metadata(conn, "schema_version", "2")
        self.assertEqual(get_metadata(conn, "schema_version"), "2")
        self.assertIsNone(get_metadata(conn, "missing"))
        database.close()


if __name__ == "__main__":
    unittest.main()
