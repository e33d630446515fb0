import unittest

from medequip.schemas.machines import MachineRecord
from medequip.services.catalog_service import (
    CatalogFilter,
    CatalogView,
    category_options,
    featured_machines,
    filter_machines,
    matches,
)
from medequip.services.pricing_service import calculate_rental_price, is_valid_duration, parse_duration


PRICING = {"perDay": 100, "perWeek": 600, "perMonth": 5000}


def _machine(machine_id, name, category, condition, price, available=True, machine_type="Monitor", description=""):
    return MachineRecord(
        id=machine_id,
        machineName=name,
        type=machine_type,
        category=category,
        condition=condition,
        description=description or f"{name} refurbished",
        price=price,
        availability=available,
    )


CATALOG = [
    _machine("1", "IntelliVue MX450", "Monitoring", "Excellent", 45000),
    _machine("2", "Mindray SV300", "Critical Care", "Good", 65000, machine_type="Ventilator"),
    _machine("3", "Logiq E", "Imaging", "Fair", 38000, available=False, machine_type="Ultrasound"),
    _machine("4", "Dash 4000", "Monitoring", "Good", 20000, description="Portable ECG unit"),
    _machine("5", "Servo-i", "Critical Care", "Excellent", 70000, available=False, machine_type="Ventilator"),
]


class RentalPricingTests(unittest.TestCase):
    def test_three_months_at_five_thousand(self):
        self.assertEqual(calculate_rental_price("3-month", PRICING), 15000)

    def test_each_unit_uses_its_rate(self):
        self.assertEqual(calculate_rental_price("4-day", PRICING), 400)
        self.assertEqual(calculate_rental_price("2-week", PRICING), 1200)
        self.assertEqual(calculate_rental_price("1-month", PRICING), 5000)
        self.assertEqual(calculate_rental_price("0-day", PRICING), 0)

    def test_malformed_tokens_price_at_zero(self):
        for token in ["", None, "3", "month-3", "3-year", "3-months", "-1-day", "3 month", " 3-day", "x-day"]:
            with self.subTest(token=token):
                self.assertEqual(calculate_rental_price(token, PRICING), 0)
                self.assertIsNone(parse_duration(token))

    def test_quantity_is_capped_at_six_digits(self):
        self.assertEqual(calculate_rental_price("999999-day", PRICING), 99999900)
        for token in ["1000000-day", "9" * 400 + "-month", "1" * 5000 + "-day"]:
            with self.subTest(length=len(token)):
                self.assertEqual(calculate_rental_price(token, PRICING), 0)
                self.assertFalse(is_valid_duration(token))

    def test_accepts_pricing_objects(self):
        record = _machine("9", "Any", "Any", "Good", 0)
        record = record.model_copy(update={"rentalPricing": record.rentalPricing.model_copy(update={"perWeek": 250})})
        self.assertEqual(calculate_rental_price("2-week", record.rentalPricing), 500)


class CatalogFilterTests(unittest.TestCase):
    def test_all_pass_filter_returns_catalog_in_order(self):
        result = filter_machines(CATALOG, CatalogFilter())
        self.assertEqual([m.id for m in result], ["1", "2", "3", "4", "5"])

    def test_search_is_case_insensitive_over_name_type_and_description(self):
        self.assertEqual([m.id for m in filter_machines(CATALOG, CatalogFilter(search="MINDRAY"))], ["2"])
        self.assertEqual([m.id for m in filter_machines(CATALOG, CatalogFilter(search="ventil"))], ["2", "5"])
        self.assertEqual([m.id for m in filter_machines(CATALOG, CatalogFilter(search="ecg"))], ["4"])

    def test_price_bounds_are_inclusive(self):
        result = filter_machines(CATALOG, CatalogFilter(min_price=38000, max_price=65000))
        self.assertEqual([m.id for m in result], ["1", "2", "3"])

    def test_availability_modes(self):
        self.assertEqual([m.id for m in filter_machines(CATALOG, CatalogFilter(availability="available"))], ["1", "2", "4"])
        self.assertEqual([m.id for m in filter_machines(CATALOG, CatalogFilter(availability="unavailable"))], ["3", "5"])

    def test_predicates_combine_with_and(self):
        filters = CatalogFilter(category="Critical Care", condition="Excellent", availability="unavailable")
        self.assertEqual([m.id for m in filter_machines(CATALOG, filters)], ["5"])
        filters = CatalogFilter(category="Monitoring", condition="Fair")
        self.assertEqual(filter_machines(CATALOG, filters), [])

    def test_results_are_ordered_subsets_satisfying_every_predicate(self):
        filter_grid = [
            CatalogFilter(search=search, category=category, condition=condition, max_price=max_price, availability=availability)
            for search in ["", "o"]
            for category in ["all", "Monitoring", "Critical Care"]
            for condition in ["all", "Good", "Excellent"]
            for max_price in [None, 50000]
            for availability in ["all", "available", "unavailable"]
        ]
        catalog_ids = [m.id for m in CATALOG]
        for filters in filter_grid:
            with self.subTest(filters=filters):
                result = filter_machines(CATALOG, filters)
                ids = [m.id for m in result]
                self.assertEqual(ids, [i for i in catalog_ids if i in ids])
                self.assertTrue(all(matches(m, filters) for m in result))

    def test_featured_machines_are_first_available_in_order(self):
        self.assertEqual([m.id for m in featured_machines(CATALOG)], ["1", "2", "4"])
        self.assertEqual([m.id for m in featured_machines(CATALOG, limit=1)], ["1"])
        self.assertEqual(featured_machines([m for m in CATALOG if not m.availability]), [])

    def test_catalog_view_reuses_results_and_lists_facets(self):
        view = CatalogView(CATALOG)
        filters = CatalogFilter(category="Imaging")
        first = view.filtered(filters)
        second = view.filtered(CatalogFilter(category="Imaging"))
        self.assertEqual(first, second)
        self.assertEqual([m.id for m in view.filtered(CatalogFilter(category="Monitoring"))], ["1", "4"])
        self.assertEqual(view.facets()["categories"], ["all", "Monitoring", "Critical Care", "Imaging"])
        self.assertEqual(category_options([]), ["all"])


if __name__ == "__main__":
    unittest.main()
