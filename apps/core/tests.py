from decimal import Decimal

from django.test import SimpleTestCase

from .money import allocate_money, money_str, quantize_money, to_decimal


class MoneyTestCase(SimpleTestCase):

    def test_to_decimal(self):
        self.assertEqual(to_decimal(0.1), Decimal('0.1'))
        self.assertEqual(to_decimal(None), Decimal('0'))
        self.assertEqual(to_decimal('abc'), Decimal('0'))

    def test_quantize_rounds_half_up(self):
        self.assertEqual(quantize_money(Decimal('0.005')), Decimal('0.01'))
        self.assertEqual(money_str('12.5'), '12.50')


class AllocateMoneyTestCase(SimpleTestCase):

    def test_leftover_cents_go_to_largest_remainders(self):
        shares = allocate_money([Decimal('0.005')] * 4, Decimal('0.02'))
        self.assertEqual(shares, [Decimal('0.01'), Decimal('0.01'), Decimal('0.00'), Decimal('0.00')])

    def test_even_split_of_a_third(self):
        third = Decimal('100') / 3
        shares = allocate_money([third] * 3, Decimal('100'))
        self.assertEqual(sum(shares), Decimal('100.00'))
        self.assertEqual(shares, [Decimal('33.34'), Decimal('33.33'), Decimal('33.33')])

    def test_largest_fraction_wins(self):
        shares = allocate_money([Decimal('1.004'), Decimal('2.009')], Decimal('3.01'))
        self.assertEqual(shares, [Decimal('1.00'), Decimal('2.01')])

    def test_empty(self):
        self.assertEqual(allocate_money([], Decimal('5')), [])
