from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from ..exceptions import (InvalidStatusTransition, QuantityOutOfRange,
                          StockBalanceMissing)
from ..models import (AuditLog, GLJournal, Order, OrderMovement,
                      ProvisionalBalance, StockBalance, SubledgerTransaction,
                      Voucher)
from ..services import (add_movement, allowed_order_transitions,
                        cancel_movement, change_order_status, create_order,
                        movement_totals, post_movement, post_order_to_ledger)
from .helpers import LedgerFixtureMixin


class OrderFixtureMixin(LedgerFixtureMixin):

    def sales_order(self, quantity=10, price=120, **line):
        return create_order(
            "sales",
            [{"item": self.item, "quantity": quantity, "price": price, **line}],
            customer=self.customer,
        )

    def purchase_order(self, quantity=10, price=120, **line):
        return create_order(
            "purchase",
            [{"item": self.item, "quantity": quantity, "price": price, **line}],
            vendor=self.vendor,
        )

    def confirmed(self, order):
        return change_order_status(order.pk, "confirmed")

    def walk(self, order, *statuses):
        for status in statuses:
            order = change_order_status(order.pk, status)
        return order


class CreateOrderTests(OrderFixtureMixin, TestCase):

    def setUp(self):
        self.make_chart()

    def test_order_is_created_as_draft_with_number(self):
        order = self.sales_order(dims={"site": "S1", "warehouse": "W1"})
        self.assertEqual(order.status, "draft")
        self.assertEqual(order.order_num, "SO_000001")
        line = order.lines.get()
        self.assertEqual(line.quantity, Decimal("10"))
        self.assertEqual(line.site, "S1")
        self.assertEqual(line.batch, "")
        self.assertEqual(self.purchase_order().order_num, "PO_000001")

    def test_unknown_dimension_rejected(self):
        with self.assertRaises(ValidationError):
            self.sales_order(dims={"planet": "Mars"})
        self.assertFalse(Order.objects.exists())

    def test_sales_order_cannot_carry_vendor(self):
        with self.assertRaises(ValidationError):
            create_order(
                "sales", [{"item": self.item, "quantity": 1, "price": 1}],
                customer=self.customer, vendor=self.vendor,
            )


class OrderStatusTests(OrderFixtureMixin, TestCase):

    def setUp(self):
        self.make_chart()
        self.order = self.sales_order()

    def test_transition_table(self):
        self.assertEqual(
            allowed_order_transitions("draft"),
            ["approved", "confirmed", "cancelled", "admin_mode", "any_mode"],
        )
        self.assertEqual(allowed_order_transitions("admin_mode"), ["draft", "any_mode"])
        self.assertIn("invoiced", allowed_order_transitions("any_mode"))
        self.assertNotIn("any_mode", allowed_order_transitions("any_mode"))

    def test_illegal_transition_is_rejected(self):
        with self.assertRaises(InvalidStatusTransition) as cm:
            change_order_status(self.order.pk, "shipped")
        self.assertEqual(cm.exception.messages[0], "Cannot go from draft to shipped")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "draft")

    def test_cancelled_is_terminal(self):
        change_order_status(self.order.pk, "cancelled")
        with self.assertRaises(InvalidStatusTransition):
            change_order_status(self.order.pk, "confirmed")

    """ confirmed → reserve; cancelled → release """
    def test_confirm_reserves_and_cancel_releases(self):
        order = self.confirmed(self.order)
        self.assertTrue(order.stock_reserved)
        self.assertEqual(ProvisionalBalance.objects.get().quantity, Decimal("10"))

        order = change_order_status(order.pk, "cancelled")
        self.assertFalse(order.stock_reserved)
        self.assertEqual(ProvisionalBalance.objects.get().quantity, Decimal("0"))

    def test_delivered_releases_reservation_and_applies_stock(self):
        order = self.walk(self.order, "confirmed", "shipped", "delivered")
        self.assertEqual(order.status, "delivered")
        self.assertFalse(order.stock_reserved)
        self.assertTrue(order.stock_applied)
        self.assertEqual(ProvisionalBalance.objects.get().quantity, Decimal("0"))
        # sales delivery takes stock out
        self.assertEqual(StockBalance.objects.get().quantity, Decimal("-10"))

    def test_status_change_rolls_back_with_stock_failure(self):
        order = self.walk(self.order, "confirmed", "shipped", "delivered")
        StockBalance.objects.all().delete()
        change_order_status(order.pk, "any_mode")
        with self.assertRaises(StockBalanceMissing):
            change_order_status(order.pk, "cancelled")
        order.refresh_from_db()
        self.assertEqual(order.status, "any_mode")
        self.assertTrue(order.stock_applied)

    """ Override escape: a delivered order can still be cancelled through any_mode """
    def test_any_mode_cancel_reverses_applied_stock(self):
        order = self.walk(self.order, "confirmed", "shipped", "delivered", "any_mode", "cancelled")
        self.assertEqual(order.status, "cancelled")
        self.assertFalse(order.stock_applied)
        self.assertEqual(StockBalance.objects.get().quantity, Decimal("0"))

    def test_admin_mode_returns_to_draft(self):
        order = self.walk(self.order, "confirmed", "admin_mode", "draft")
        self.assertEqual(order.status, "draft")
        # stock effects stay in force until cancelled
        self.assertTrue(order.stock_reserved)

    def test_status_changes_are_audited(self):
        self.confirmed(self.order)
        entry = AuditLog.objects.get(object_id=self.order.pk, action="status")
        self.assertEqual(entry.changes, {"from": "draft", "to": "confirmed"})


class OrderInvoicingTests(OrderFixtureMixin, TestCase):

    def setUp(self):
        self.make_chart()

    """ 10 × 120, 10% discount, 10% GST: 1080 revenue, 108 GST, 1188 receivable """
    def test_invoiced_sales_order_is_posted_and_vouchered(self):
        order = self.sales_order(discount_percent=10, gst_percent=10)
        order = self.walk(order, "confirmed", "shipped", "delivered", "invoiced")
        self.assertEqual(order.status, "invoiced")

        journal = GLJournal.objects.get(source_type="SALES_INVOICE", source_id=order.pk)
        self.assertEqual(journal.status, "posted")
        self.assertEqual(journal.reference, order.order_num)
        self.assertEqual(journal.compute_totals(), (Decimal("1188.00"), Decimal("1188.00")))

        voucher = Voucher.objects.get(journal_ref=journal.pk)
        self.assertEqual(voucher.voucher_no, "FVCHR_000001")
        self.assertEqual(voucher.source_type, "SALES_INVOICE")
        self.assertEqual(voucher.source_id, order.pk)
        rows = {
            line.account_code: (line.debit, line.credit) for line in voucher.lines.all()
        }
        self.assertEqual(rows, {
            "SALES_REVENUE": (Decimal("0.00"), Decimal("1080.00")),
            "GST_PAYABLE": (Decimal("0.00"), Decimal("108.00")),
            "1200": (Decimal("1188.00"), Decimal("0.00")),
        })
        self.assertEqual(sum(l.local_amount for l in voucher.lines.all()), Decimal("0.00"))

        receivable = SubledgerTransaction.objects.get(subledger_type="AR")
        self.assertEqual(receivable.customer, self.customer)
        self.assertEqual(receivable.amount, Decimal("1188.00"))
        self.assertEqual(receivable.current_voucher, voucher.voucher_no)

    def test_invoiced_purchase_order_debits_inventory(self):
        order = self.purchase_order(discount_percent=10, gst_percent=10)
        self.walk(order, "confirmed", "shipped", "delivered", "invoiced")
        voucher = Voucher.objects.get(source_type="PURCHASE_INVOICE")
        rows = {
            line.account_code: (line.debit, line.credit) for line in voucher.lines.all()
        }
        self.assertEqual(rows, {
            "1400": (Decimal("1080.00"), Decimal("0.00")),
            "GST_INPUT": (Decimal("108.00"), Decimal("0.00")),
            "2100": (Decimal("0.00"), Decimal("1188.00")),
        })
        inventory = voucher.lines.get(account_code="1400")
        self.assertEqual(inventory.subledger_code, self.item.pk)
        self.assertEqual(inventory.subledger_source_type, "PURCHASE")
        # purchase receipt brought the stock in
        self.assertEqual(StockBalance.objects.get().quantity, Decimal("10"))

    def test_posting_twice_reuses_the_journal(self):
        order = self.walk(self.sales_order(), "confirmed", "shipped", "delivered", "invoiced")
        journal = post_order_to_ledger(order)
        self.assertEqual(GLJournal.objects.count(), 1)
        self.assertEqual(Voucher.objects.count(), 1)
        self.assertEqual(journal.source_id, order.pk)

    def test_order_without_counterparty_cannot_be_posted(self):
        order = self.walk(self.sales_order(), "confirmed", "shipped", "delivered")
        Order.objects.filter(pk=order.pk).update(customer=None)
        with self.assertRaises(ValidationError):
            change_order_status(order.pk, "invoiced")
        order.refresh_from_db()
        self.assertEqual(order.status, "delivered")
        self.assertFalse(GLJournal.objects.exists())


class OrderMovementTests(OrderFixtureMixin, TestCase):

    def setUp(self):
        self.make_chart()
        self.order = self.confirmed(self.sales_order())

    def status(self):
        return Order.objects.values_list("status", flat=True).get(pk=self.order.pk)

    """ ordered 10, shipped 6: partially shipped """
    def test_partial_shipment(self):
        add_movement(self.order.pk, "ship", 6, post=True, external_ref="AWB-1")
        self.assertEqual(self.status(), "partially_shipped")
        totals = movement_totals(self.order)
        self.assertEqual(totals["ordered"], Decimal("10"))
        self.assertEqual(totals["shipped"], Decimal("6"))

    def test_draft_rows_do_not_count(self):
        add_movement(self.order.pk, "ship", 6)
        self.assertEqual(self.status(), "confirmed")
        self.assertEqual(movement_totals(self.order)["shipped"], Decimal("0"))

    def test_full_shipment_then_delivery(self):
        add_movement(self.order.pk, "ship", 6, post=True)
        add_movement(self.order.pk, "ship", 4, post=True)
        self.assertEqual(self.status(), "shipped")
        add_movement(self.order.pk, "deliver", 3, post=True)
        self.assertEqual(self.status(), "partially_delivered")
        add_movement(self.order.pk, "deliver", 7, post=True)
        self.assertEqual(self.status(), "delivered")
        add_movement(self.order.pk, "invoice", 10, post=True)
        self.assertEqual(self.status(), "invoiced")

    """ ordered 10, shipped 6, delivered 6: delivery is measured against shipments """
    def test_delivering_everything_shipped_is_delivered(self):
        add_movement(self.order.pk, "ship", 6, post=True)
        add_movement(self.order.pk, "deliver", 6, post=True)
        self.assertEqual(self.status(), "delivered")
        add_movement(self.order.pk, "invoice", 4, post=True)
        self.assertEqual(self.status(), "partially_invoiced")

    """ An order walked entirely through rows is stocked, posted and vouchered """
    def test_rows_completing_the_order_run_header_effects(self):
        for action in ("ship", "deliver", "invoice"):
            add_movement(self.order.pk, action, 10, post=True)
        order = Order.objects.get(pk=self.order.pk)
        self.assertEqual(order.status, "invoiced")
        self.assertFalse(order.stock_reserved)
        self.assertTrue(order.stock_applied)
        self.assertEqual(ProvisionalBalance.objects.get().quantity, Decimal("0"))
        self.assertEqual(StockBalance.objects.get().quantity, Decimal("-10"))

        journal = GLJournal.objects.get(source_type="SALES_INVOICE", source_id=order.pk)
        self.assertEqual(journal.status, "posted")
        self.assertEqual(journal.compute_totals(), (Decimal("1200.00"), Decimal("1200.00")))
        self.assertEqual(Voucher.objects.filter(journal_ref=journal.pk).count(), 1)

    def test_stock_is_applied_once_across_header_and_rows(self):
        add_movement(self.order.pk, "ship", 10, post=True)
        draft = add_movement(self.order.pk, "deliver", 10)
        change_order_status(self.order.pk, "delivered")
        post_movement(draft.pk)
        self.assertEqual(self.status(), "delivered")
        self.assertEqual(StockBalance.objects.get().quantity, Decimal("-10"))

    def test_rows_cannot_revive_a_cancelled_order(self):
        add_movement(self.order.pk, "ship", 6, post=True)
        draft = add_movement(self.order.pk, "ship", 2)
        change_order_status(self.order.pk, "cancelled")
        with self.assertRaises(ValidationError):
            post_movement(draft.pk)
        with self.assertRaises(ValidationError):
            cancel_movement(draft.pk)
        self.assertEqual(self.status(), "cancelled")
        draft.refresh_from_db()
        self.assertEqual(draft.status, "draft")

    def test_override_status_is_not_derived_away(self):
        add_movement(self.order.pk, "ship", 6, post=True)
        change_order_status(self.order.pk, "admin_mode")
        add_movement(self.order.pk, "ship", 4, post=True)
        self.assertEqual(self.status(), "admin_mode")

    def test_quantity_beyond_remaining_is_rejected(self):
        with self.assertRaises(QuantityOutOfRange) as cm:
            add_movement(self.order.pk, "ship", 11)
        self.assertEqual(cm.exception.messages[0], "Qty out of range (remaining 10)")
        with self.assertRaises(QuantityOutOfRange):
            add_movement(self.order.pk, "ship", 0)
        # nothing shipped yet, so nothing can be delivered
        with self.assertRaises(QuantityOutOfRange):
            add_movement(self.order.pk, "deliver", 1)
        self.assertFalse(OrderMovement.objects.exists())

    """ Range is re-checked when a draft row is posted """
    def test_posting_draft_after_full_shipment_is_out_of_range(self):
        draft = add_movement(self.order.pk, "ship", 4)
        add_movement(self.order.pk, "ship", 10, post=True)
        with self.assertRaises(QuantityOutOfRange) as cm:
            post_movement(draft.pk)
        self.assertEqual(cm.exception.remaining, "0")
        draft.refresh_from_db()
        self.assertEqual(draft.status, "draft")

    def test_post_movement(self):
        draft = add_movement(self.order.pk, "ship", 4)
        post_movement(draft.pk)
        draft.refresh_from_db()
        self.assertEqual(draft.status, "posted")
        self.assertEqual(self.status(), "partially_shipped")

    def test_cancelling_posted_rows_falls_back(self):
        first = add_movement(self.order.pk, "ship", 6, post=True)
        second = add_movement(self.order.pk, "ship", 4, post=True)
        self.assertEqual(self.status(), "shipped")
        cancel_movement(second.pk)
        self.assertEqual(self.status(), "partially_shipped")
        cancel_movement(first.pk)
        self.assertEqual(self.status(), "confirmed")
        # reservation untouched by row changes
        self.assertEqual(ProvisionalBalance.objects.get().quantity, Decimal("10"))

    def test_post_movement_ignores_cancelled_row(self):
        row = add_movement(self.order.pk, "ship", 6, post=True)
        cancel_movement(row.pk)
        post_movement(row.pk)
        row.refresh_from_db()
        self.assertEqual(row.status, "cancelled")
        self.assertEqual(self.status(), "confirmed")

    def test_movements_need_a_live_order(self):
        draft_order = self.sales_order()
        with self.assertRaises(ValidationError):
            add_movement(draft_order.pk, "ship", 1)
        with self.assertRaises(ValidationError):
            add_movement(self.order.pk, "return", 1)

    """ A requested full status gives way to partial movements """
    def test_partial_movements_win_over_requested_status(self):
        add_movement(self.order.pk, "ship", 6, post=True)
        order = change_order_status(self.order.pk, "shipped")
        self.assertEqual(order.status, "partially_shipped")

    def test_order_with_posted_movements_cannot_be_deleted(self):
        add_movement(self.order.pk, "ship", 6, post=True)
        with self.assertRaises(ValidationError):
            Order.objects.filter(pk=self.order.pk).delete()
