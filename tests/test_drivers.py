import unittest
from datetime import datetime

from drivers import (
    get_driver_profile,
    next_average_rating,
    record_completed_ride,
    save_driver_profile,
    set_driver_availability,
)
from errors import DriverProfileNotFound, ValidationError
from schemas import DriverProfileRequest
from store_fixtures import insert_driver, make_db


class TestRunningRating(unittest.TestCase):
    def test_first_rating_is_taken_as_is(self):
        self.assertEqual(next_average_rating(0, 1, 4), 4)

    def test_incremental_weights(self):
        self.assertAlmostEqual(next_average_rating(4, 2, 5), 4.5)
        self.assertAlmostEqual(next_average_rating(4.5, 3, 3), 4.0)
        self.assertAlmostEqual(next_average_rating(3.0, 4, 5), 3.0 * 0.75 + 5 * 0.25)


class TestRecordCompletedRide(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        self.driver = insert_driver(self.db, "d1")

    def stored(self):
        return self.db["driver"].find_one({"user_id": "d1"})

    def test_totals_and_rating(self):
        record_completed_ride(self.db, self.driver, 1500, rating=4)
        record_completed_ride(self.db, self.driver, 500, rating=5)
        driver = record_completed_ride(self.db, self.driver, 1000, rating=3)

        for doc in (driver, self.stored()):
            self.assertEqual(doc["total_rides"], 3)
            self.assertEqual(doc["total_earnings"], 3000)
            self.assertAlmostEqual(doc["average_rating"], 4.0)

    def test_unrated_ride_keeps_average_but_counts(self):
        record_completed_ride(self.db, self.driver, 100, rating=5)
        record_completed_ride(self.db, self.driver, 100)
        driver = self.stored()
        self.assertEqual(driver["total_rides"], 2)
        self.assertEqual(driver["average_rating"], 5)

    def test_later_rating_uses_ride_count_as_weight(self):
        # The unrated ride still counts towards n
        record_completed_ride(self.db, self.driver, 100, rating=4)
        record_completed_ride(self.db, self.driver, 100)
        record_completed_ride(self.db, self.driver, 100, rating=1)
        self.assertAlmostEqual(self.stored()["average_rating"], 4 * (2 / 3) + 1 * (1 / 3))

    def test_zero_is_a_real_rating(self):
        record_completed_ride(self.db, self.driver, 100, rating=4)
        driver = record_completed_ride(self.db, self.driver, 100, rating=0)
        self.assertAlmostEqual(driver["average_rating"], 2.0)
        self.assertAlmostEqual(self.stored()["average_rating"], 2.0)

    def test_rating_out_of_range(self):
        for rating in (-1, 5.5):
            with self.subTest(rating=rating):
                with self.assertRaises(ValidationError):
                    record_completed_ride(self.db, self.driver, 100, rating=rating)
        self.assertEqual(self.stored()["total_rides"], 0)


class TestDriverProfile(unittest.TestCase):
    def setUp(self):
        self.db = make_db()

    def test_create_requires_license(self):
        with self.assertRaises(ValidationError):
            save_driver_profile(self.db, "d1", DriverProfileRequest(location="Delhi"))
        with self.assertRaises(ValidationError):
            save_driver_profile(self.db, "d1", DriverProfileRequest(licenseNumber="DL-1"))
        self.assertEqual(self.db["driver"].count_documents({}), 0)

    def test_create_then_update(self):
        driver, created = save_driver_profile(self.db, "d1", DriverProfileRequest(
            licenseNumber="DL-1", licenseExpiry="2030-01-01",
        ))
        self.assertTrue(created)
        self.assertEqual(driver["location"], "Not specified")
        self.assertTrue(driver["is_available"])
        self.assertEqual(driver["languages"], ["English"])

        driver, created = save_driver_profile(self.db, "d1", DriverProfileRequest(location="Gurgaon", experience=6))
        self.assertFalse(created)
        self.assertEqual(driver["location"], "Gurgaon")
        self.assertEqual(driver["experience"], 6)
        self.assertEqual(driver["license_number"], "DL-1")
        self.assertEqual(driver["license_expiry"], datetime(2030, 1, 1))

    def test_get_missing_profile(self):
        with self.assertRaises(DriverProfileNotFound):
            get_driver_profile(self.db, "ghost")


class TestDriverAvailability(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        insert_driver(self.db, "d1")

    def test_toggle(self):
        self.assertFalse(set_driver_availability(self.db, "d1", False)["is_available"])
        self.assertTrue(set_driver_availability(self.db, "d1", True)["is_available"])

    def test_missing_value(self):
        with self.assertRaises(ValidationError):
            set_driver_availability(self.db, "d1", None)

    def test_missing_profile(self):
        with self.assertRaises(DriverProfileNotFound):
            set_driver_availability(self.db, "ghost", True)


if __name__ == "__main__":
    unittest.main()
