from decimal import Decimal
from unittest.mock import patch

from django.core.exceptions import ValidationError
from django.db.models import Sum
from django.test import TestCase

from ..models import AuditLog, Counter, SubledgerTransaction, Voucher
from ..services import (build_voucher, create_journal, post_and_build_voucher,
                        post_journal, record_subledger_txn)
from ..services.subledger import SubledgerKind
from ..services.voucher import fx_balancing_line
from .helpers import LedgerFixtureMixin


class BuildVoucherTests(LedgerFixtureMixin, TestCase):

    def setUp(self):
        self.make_chart()

    def posted_journal(self, lines, **header):
        journal = create_journal({"lines": lines, **header})
        return post_journal(journal.pk)

    def test_voucher_numbers_are_sequential(self):
        first = build_voucher(self.posted_journal([
            self.line(self.cash, debit=100), self.line(self.revenue, credit=100),
        ]))
        second = build_voucher(self.posted_journal([
            self.line(self.cash, debit=5), self.line(self.revenue, credit=5),
        ]))
        self.assertEqual(first.voucher_no, "FVCHR_000001")
        self.assertEqual(second.voucher_no, "FVCHR_000002")

    def test_lines_mirror_the_journal(self):
        journal = self.posted_journal(
            [
                self.line(self.cash, debit=100, item=self.item.pk, dims={"site": "S1"}),
                self.line(self.revenue, credit=100),
            ],
            reference="INV-9",
        )
        voucher = build_voucher(journal)
        first, second = voucher.lines.all()
        self.assertEqual(first.account_code, "1110")
        # item pointer beats the account for the sub-ledger code
        self.assertEqual(first.subledger_code, self.item.pk)
        self.assertEqual(first.dims, {"site": "S1"})
        self.assertEqual(first.local_amount, Decimal("100.00"))
        self.assertEqual(second.account_code, "SALES_REVENUE")
        self.assertEqual(second.subledger_code, self.revenue.pk)
        self.assertEqual(second.local_amount, Decimal("-100.00"))
        self.assertEqual(voucher.source_type, "JOURNAL")
        self.assertEqual(voucher.source_id, journal.pk)
        self.assertEqual(voucher.journal_ref, journal.pk)
        self.assertEqual(voucher.invoice_ref_num, "INV-9")
        self.assertEqual(voucher.voucher_date, journal.journal_date)
        self.assertTrue(
            AuditLog.objects.filter(action="build_voucher", object_id=voucher.pk).exists()
        )

    """ Sub-ledger lines point at their sub-ledger txn, not the journal """
    def test_subledger_pointer_is_carried(self):
        txn = record_subledger_txn(
            SubledgerKind.BANK, self.bank_account, Decimal("250"), source_type="BANK_TRANSFER"
        )
        journal = self.posted_journal([
            {
                "subledger": {"subledger_type": "BANK", "txn_id": txn.pk},
                "bank_account": self.bank_account.pk,
                "debit": 250, "currency": "INR",
            },
            self.line(self.revenue, credit=250),
        ])
        voucher = build_voucher(journal)
        line = voucher.lines.get(line_num=1)
        self.assertEqual(line.account_code, "1120")
        self.assertEqual(line.subledger_code, self.bank_account.pk)
        self.assertEqual(line.subledger_txn_id, txn.pk)
        self.assertEqual(line.subledger_source_type, "BANK_TRANSFER")
        self.assertEqual(line.subledger_line_num, txn.line_num)

        txn.refresh_from_db()
        self.assertEqual(txn.related_voucher, voucher.voucher_no)
        self.assertEqual(txn.current_voucher, voucher.voucher_no)

    """ Same document amount at different rates: FX gain closes the gap """
    def test_fx_gain_line_balances_voucher(self):
        journal = self.posted_journal([
            self.line(self.cash, debit=100, currency="USD", rate="83"),
            self.line(self.revenue, credit=100, currency="USD", rate="82.5"),
        ])
        voucher = build_voucher(journal)
        self.assertEqual(voucher.lines.count(), 3)
        fx = voucher.lines.get(line_num=3)
        self.assertEqual(fx.account_code, "FX_GAIN")
        self.assertEqual(fx.credit, Decimal("50.00"))
        self.assertEqual(fx.debit, Decimal("0.00"))
        self.assertEqual(fx.local_amount, Decimal("-50.00"))
        self.assertEqual(fx.currency, "INR")
        total = voucher.lines.aggregate(total=Sum("local_amount"))["total"]
        self.assertLessEqual(abs(total), Decimal("0.01"))

    def test_fx_loss_line_is_a_debit(self):
        journal = self.posted_journal([
            self.line(self.cash, debit=100, currency="USD", rate="82.5"),
            self.line(self.revenue, credit=100, currency="USD", rate="83"),
        ])
        voucher = build_voucher(journal)
        fx = voucher.lines.get(line_num=3)
        self.assertEqual(fx.account_code, "FX_LOSS")
        self.assertEqual(fx.debit, Decimal("50.00"))
        self.assertEqual(fx.local_amount, Decimal("50.00"))
        total = voucher.lines.aggregate(total=Sum("local_amount"))["total"]
        self.assertEqual(total, Decimal("0.00"))

    def test_no_fx_line_within_tolerance(self):
        rows = [{"local_amount": Decimal("10.00")}, {"local_amount": Decimal("-9.99")}]
        self.assertIsNone(fx_balancing_line(rows))
        rows = [{"local_amount": Decimal("10.00")}, {"local_amount": Decimal("-9.98")}]
        self.assertEqual(fx_balancing_line(rows)["local_amount"], Decimal("-0.02"))

    """ Successive postings on one bank account form a chain """
    def test_lineage_chain_across_vouchers(self):
        first_txn = record_subledger_txn(
            SubledgerKind.BANK, self.bank_account, Decimal("100"), source_type="BANK_TRANSFER"
        )
        first = build_voucher(self.posted_journal([
            {
                "subledger": {"subledger_type": "BANK", "txn_id": first_txn.pk},
                "bank_account": self.bank_account.pk, "debit": 100, "currency": "INR",
            },
            self.line(self.revenue, credit=100),
        ]))

        second_txn = record_subledger_txn(
            SubledgerKind.BANK, self.bank_account, Decimal("-40"), source_type="BANK_TRANSFER"
        )
        self.assertEqual(second_txn.previous_txn, first_txn)
        second = build_voucher(self.posted_journal([
            self.line(self.cash, debit=40),
            {
                "subledger": {"subledger_type": "BANK", "txn_id": second_txn.pk},
                "bank_account": self.bank_account.pk, "credit": 40, "currency": "INR",
            },
        ]), posting_event_type="AUDIT")

        first_txn.refresh_from_db()
        second_txn.refresh_from_db()
        first.refresh_from_db()
        self.assertEqual(first_txn.current_voucher, first.voucher_no)
        self.assertEqual(first_txn.next_voucher, second.voucher_no)
        self.assertEqual(second_txn.current_voucher, second.voucher_no)
        self.assertEqual(second.previous_voucher_no, first.voucher_no)
        self.assertEqual(first.next_voucher_no, second.voucher_no)
        self.assertEqual(first.previous_posting_event_type, "NONE")
        self.assertEqual(first.next_posting_event_type, "AUDIT")
        self.assertEqual(second.previous_posting_event_type, "FINANCIAL")

    def test_only_posted_journals_get_vouchers(self):
        draft = create_journal({"lines": [
            self.line(self.cash, debit=1), self.line(self.revenue, credit=1),
        ]})
        with self.assertRaises(ValidationError):
            build_voucher(draft)
        self.assertFalse(Voucher.objects.exists())

    def test_journal_is_vouchered_once(self):
        journal = self.posted_journal([
            self.line(self.cash, debit=1), self.line(self.revenue, credit=1),
        ])
        build_voucher(journal)
        with self.assertRaises(ValidationError):
            build_voucher(journal)
        self.assertEqual(Voucher.objects.count(), 1)

    def test_voucher_is_immutable(self):
        voucher = build_voucher(self.posted_journal([
            self.line(self.cash, debit=1), self.line(self.revenue, credit=1),
        ]))
        voucher.invoice_ref_num = "tampered"
        with self.assertRaises(ValidationError):
            voucher.save()
        with self.assertRaises(ValidationError):
            voucher.delete()
        line = voucher.lines.first()
        line.debit = Decimal("2")
        with self.assertRaises(ValidationError):
            line.save()
        with self.assertRaises(ValidationError):
            Voucher.objects.filter(pk=voucher.pk).delete()

    """ A failed build gives its voucher number back """
    def test_failed_build_compensates_counter(self):
        journal = self.posted_journal([
            self.line(self.cash, debit=1), self.line(self.revenue, credit=1),
        ])
        with patch(
            "ledger_core.services.voucher._stamp_lineage",
            side_effect=RuntimeError("stamp failed"),
        ):
            with self.assertRaises(RuntimeError):
                build_voucher(journal)
        self.assertFalse(Voucher.objects.exists())
        self.assertFalse(Counter.objects.filter(name="voucher", seq__gt=0).exists())
        self.assertEqual(build_voucher(journal).voucher_no, "FVCHR_000001")

    def test_post_and_build_in_one_call(self):
        journal = create_journal({"lines": [
            self.line(self.cash, debit=7), self.line(self.revenue, credit=7),
        ]})
        journal, voucher = post_and_build_voucher(journal.pk, posting_event_type="AUDIT")
        self.assertEqual(journal.status, "posted")
        self.assertEqual(voucher.posting_event_type, "AUDIT")
        self.assertEqual(SubledgerTransaction.objects.count(), 0)
