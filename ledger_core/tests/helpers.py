from decimal import Decimal

from ..models import Account, BankAccount, Customer, Item, Vendor


class LedgerFixtureMixin:
    """Chart of accounts + one of each master record, shared by the suites."""

    def make_chart(self):
        # group account: cannot take postings itself
        self.assets = Account.objects.create(
            code="1000", name="Assets", ac_type="asset", is_leaf=False
        )
        self.cash = Account.objects.create(
            code="1110", name="Cash on Hand", ac_type="asset", parent=self.assets
        )
        self.bank = Account.objects.create(
            code="1120", name="Bank", ac_type="asset", parent=self.assets
        )
        self.receivables = Account.objects.create(
            code="1200", name="Accounts Receivable", ac_type="asset", parent=self.assets
        )
        self.inventory = Account.objects.create(
            code="1400", name="Inventory", ac_type="asset", parent=self.assets
        )
        self.gst_input = Account.objects.create(
            code="GST_INPUT", name="GST Input Credit", ac_type="asset"
        )
        self.payables = Account.objects.create(
            code="2100", name="Accounts Payable", ac_type="liability",
            normal_balance="credit",
        )
        self.gst_payable = Account.objects.create(
            code="GST_PAYABLE", name="GST Payable", ac_type="liability",
            normal_balance="credit",
        )
        self.revenue = Account.objects.create(
            code="SALES_REVENUE", name="Sales Revenue", ac_type="income",
            normal_balance="credit",
        )
        # fed only through sub-ledgers
        self.locked = Account.objects.create(
            code="3999", name="Suspense (locked)", ac_type="equity",
            allow_manual_post=False,
        )

        self.customer = Customer.objects.create(
            name="Acme Retail", linked_coa_account=self.receivables
        )
        self.vendor = Vendor.objects.create(
            name="Widget Supply Co", linked_coa_account=self.payables
        )
        self.bank_account = BankAccount.objects.create(
            name="Main Current Account", linked_coa_account=self.bank
        )
        self.item = Item.objects.create(
            sku="SKU-1", name="Widget", linked_coa_account=self.inventory,
            default_unit_price=Decimal("50.00"),
        )
        # master record without a linked ledger account
        self.orphan_customer = Customer.objects.create(name="No Ledger Ltd")

    def line(self, account, debit=0, credit=0, currency="INR", rate=1, **extra):
        data = {
            "account": account.pk,
            "debit": debit,
            "credit": credit,
            "currency": currency,
            "exchange_rate": rate,
        }
        data.update(extra)
        return data
