from django.test import SimpleTestCase, TestCase

from .models import Customer, normalize_phone


class NormalizePhoneTestCase(SimpleTestCase):
    """Phone normalisation used as the customer identity key"""

    def test_plain_number_unchanged(self):
        self.assertEqual(normalize_phone('9876543210'), '9876543210')

    def test_country_code_and_spacing_stripped(self):
        self.assertEqual(normalize_phone('+91 98765 43210'), '9876543210')

    def test_trunk_prefix_stripped(self):
        self.assertEqual(normalize_phone('09876543210'), '9876543210')
        self.assertEqual(normalize_phone('091-9876543210'), '9876543210')

    def test_short_number_rejected(self):
        with self.assertRaises(ValueError):
            normalize_phone('12345')

    def test_empty_rejected(self):
        with self.assertRaises(ValueError):
            normalize_phone('')


class CustomerLookupTestCase(TestCase):

    def test_same_phone_different_format_is_same_customer(self):
        first, created = Customer.get_or_create_by_phone('Asha', '+91 98765 43210')
        self.assertTrue(created)
        second, created = Customer.get_or_create_by_phone('Asha K', '09876543210', 'asha@example.com')
        self.assertFalse(created)
        self.assertEqual(first.pk, second.pk)
        second.refresh_from_db()
        self.assertEqual(second.name, 'Asha K')
        self.assertEqual(second.email, 'asha@example.com')
