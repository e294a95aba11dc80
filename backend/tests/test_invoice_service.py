# Overview: Pytest coverage for invoice creation, stock deduction and status flow.

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from billing.extensions import db
from billing.models import DocumentSequence, Invoice, StockItem
from billing.services import invoice_service, notification_service
from billing.services.invoice_service import (
    InsufficientStockError,
    InvalidStatusTransition,
    InvoiceNotFoundError,
    PersistenceError,
    StockConflictError,
    UnknownStockItemError,
)
from billing.validation import ValidationError

from conftest import T0


def _quantity(stock_item_id):
    return db.session.get(StockItem, stock_item_id).quantity


class TestCreateInvoice:

    def test_basic_invoice(self, db_session, make_stock):
        item = make_stock(quantity=10, price_cents=10000, gst_rate_bps=1800)

        invoice = invoice_service.create_invoice(
            franchise_id="FR-001",
            lines=[{"stock_item_id": item.id, "quantity": 2}],
            customer={"name": "Anita Rao", "branch_location": "Indiranagar"},
            company={"name": "Dairy Co", "gstin": "29ABCDE1234F1Z5"},
            now=T0,
        )

        assert invoice.subtotal == Decimal("200.00")
        assert invoice.tax_amount == Decimal("36.00")
        assert invoice.cgst == Decimal("18.00")
        assert invoice.sgst == Decimal("18.00")
        assert invoice.total_amount == Decimal("236.00")
        assert invoice.round_off == 0
        assert invoice.status == invoice_service.STATUS_INCOMING
        assert invoice.created_at == T0
        assert invoice.invoice_number == "INV-FR001-0001"
        assert invoice.customer_name == "Anita Rao"
        assert invoice.company_gstin == "29ABCDE1234F1Z5"
        assert _quantity(item.id) == 8

        [line] = invoice.lines
        assert line.item_name == "Paneer Block"
        assert line.quantity == 2
        assert line.unit_price == Decimal("100.00")
        assert line.gst_rate == Decimal("18.00")
        assert line.line_total == Decimal("236.00")

    def test_rounds_total_to_whole_rupee(self, db_session, make_stock):
        item = make_stock(price_cents=9950, gst_rate_bps=500)

        invoice = invoice_service.create_invoice(
            franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 1}]
        )

        assert invoice.subtotal == Decimal("99.50")
        assert invoice.tax_amount == Decimal("4.98")
        assert invoice.total_amount == Decimal("104.00")
        assert invoice.round_off == Decimal("-0.48")
        assert invoice.subtotal + invoice.tax_amount + invoice.round_off == invoice.total_amount

    def test_numbers_are_sequential_per_franchise(self, db_session, make_stock):
        item = make_stock(quantity=100)
        line = [{"stock_item_id": item.id, "quantity": 1}]

        first = invoice_service.create_invoice(franchise_id="FR-001", lines=line)
        second = invoice_service.create_invoice(franchise_id="FR-001", lines=line)
        other = invoice_service.create_invoice(franchise_id="FR-002", lines=line)

        assert first.invoice_number == "INV-FR001-0001"
        assert second.invoice_number == "INV-FR001-0002"
        assert other.invoice_number == "INV-FR002-0001"

    def test_lines_are_snapshots(self, db_session, make_stock):
        item = make_stock(price_cents=10000)
        invoice = invoice_service.create_invoice(
            franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 1}]
        )
        invoice_id = invoice.id

        stock = db.session.get(StockItem, item.id)
        assert stock.quantity == 9
        stock.price_cents = 55000
        stock.name = "Paneer Block (500g)"
        db.session.commit()
        db.session.expire_all()

        reloaded = db.session.get(Invoice, invoice_id)
        assert reloaded.lines[0].unit_price == Decimal("100.00")
        assert reloaded.lines[0].item_name == "Paneer Block"
        assert reloaded.total_amount == Decimal("118.00")

    def test_duplicate_lines_share_one_decrement(self, db_session, make_stock):
        item = make_stock(quantity=5)

        with pytest.raises(InsufficientStockError):
            invoice_service.create_invoice(
                franchise_id="FR-001",
                lines=[
                    {"stock_item_id": item.id, "quantity": 3},
                    {"stock_item_id": item.id, "quantity": 3},
                ],
            )
        assert _quantity(item.id) == 5

        invoice = invoice_service.create_invoice(
            franchise_id="FR-001",
            lines=[
                {"stock_item_id": item.id, "quantity": 2},
                {"stock_item_id": item.id, "quantity": 3},
            ],
        )
        assert len(invoice.lines) == 2
        assert _quantity(item.id) == 0

    def test_insufficient_stock_rolls_back_everything(self, db_session, make_stock):
        plenty = make_stock("Curd Tub", quantity=50)
        scarce = make_stock("Ghee Jar", quantity=1)

        with pytest.raises(InsufficientStockError) as exc_info:
            invoice_service.create_invoice(
                franchise_id="FR-001",
                lines=[
                    {"stock_item_id": plenty.id, "quantity": 10},
                    {"stock_item_id": scarce.id, "quantity": 2},
                ],
            )

        assert exc_info.value.details == {"stock_item_id": scarce.id, "requested_quantity": 2}
        assert _quantity(plenty.id) == 50
        assert _quantity(scarce.id) == 1
        assert db.session.query(Invoice).count() == 0
        assert db.session.query(DocumentSequence).count() == 0

    def test_failed_invoice_does_not_burn_a_number(self, db_session, make_stock):
        item = make_stock(quantity=3)

        invoice_service.create_invoice(franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 1}])
        with pytest.raises(InsufficientStockError):
            invoice_service.create_invoice(franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 9}])
        invoice = invoice_service.create_invoice(
            franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 1}]
        )

        assert invoice.invoice_number == "INV-FR001-0002"

    @pytest.mark.parametrize("lines", [
        None,
        [],
        [{"stock_item_id": 1, "quantity": 0}],
        [{"stock_item_id": 1, "quantity": -2}],
        [{"stock_item_id": 1, "quantity": 1.5}],
        [{"stock_item_id": "abc", "quantity": 1}],
        ["not-an-object"],
    ])
    def test_rejects_malformed_orders(self, db_session, make_stock, lines):
        make_stock()
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(franchise_id="FR-001", lines=lines)
        assert db.session.query(Invoice).count() == 0

    def test_requires_franchise(self, db_session, make_stock):
        item = make_stock()
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(franchise_id="  ", lines=[{"stock_item_id": item.id, "quantity": 1}])

    def test_unknown_stock_item(self, db_session, make_stock):
        item = make_stock()
        with pytest.raises(UnknownStockItemError):
            invoice_service.create_invoice(
                franchise_id="FR-001",
                lines=[
                    {"stock_item_id": item.id, "quantity": 1},
                    {"stock_item_id": 9999, "quantity": 1},
                ],
            )
        assert _quantity(item.id) == 10

    def test_stale_version_is_a_conflict(self, db_session, make_stock):
        item = make_stock(quantity=10)
        read_version = item.version_id

        invoice_service.create_invoice(franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 1}])

        with pytest.raises(StockConflictError):
            invoice_service.create_invoice(
                franchise_id="FR-001",
                lines=[{"stock_item_id": item.id, "quantity": 1, "version_id": read_version}],
            )
        assert _quantity(item.id) == 9

    def test_current_version_succeeds(self, db_session, make_stock):
        item = make_stock(quantity=10)

        invoice_service.create_invoice(
            franchise_id="FR-001",
            lines=[{"stock_item_id": item.id, "quantity": 4, "version_id": item.version_id}],
        )
        assert _quantity(item.id) == 6

    def test_floor_disabled_allows_negative_stock(self, app, db_session, make_stock, monkeypatch):
        monkeypatch.setitem(app.config, "ENFORCE_STOCK_FLOOR", False)
        item = make_stock(quantity=1)

        invoice_service.create_invoice(franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 3}])

        assert _quantity(item.id) == -2

    def test_database_failure_is_persistence_error(self, db_session, make_stock, monkeypatch):
        item = make_stock(quantity=10)

        def _boom(**kwargs):
            raise IntegrityError("INSERT INTO invoices", {}, Exception("constraint failed"))

        monkeypatch.setattr(invoice_service, "allocate_document_number", _boom)

        with pytest.raises(PersistenceError):
            invoice_service.create_invoice(franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 1}])
        assert _quantity(item.id) == 10
        assert db.session.query(Invoice).count() == 0

    def test_publishes_after_commit(self, db_session, make_stock):
        item = make_stock()
        events = []
        notification_service.subscribe(notification_service.TABLE_INVOICES, "FR-001", events.append)
        stock_events = []
        notification_service.subscribe(notification_service.TABLE_STOCK_ITEMS, None, stock_events.append)

        invoice = invoice_service.create_invoice(
            franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 1}]
        )

        assert [(e.event_type, e.record_id) for e in events] == [("INSERT", invoice.id)]
        assert [e.record_id for e in stock_events] == [item.id]

    def test_failed_invoice_publishes_nothing(self, db_session, make_stock):
        item = make_stock(quantity=1)
        events = []
        notification_service.subscribe(notification_service.TABLE_INVOICES, None, events.append)

        with pytest.raises(InsufficientStockError):
            invoice_service.create_invoice(franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 5}])
        assert events == []


class TestQueries:

    def _invoice(self, item, franchise_id="FR-001", at=T0):
        return invoice_service.create_invoice(
            franchise_id=franchise_id, lines=[{"stock_item_id": item.id, "quantity": 1}], now=at
        )

    def test_get_invoice_is_franchise_scoped(self, db_session, make_stock):
        invoice = self._invoice(make_stock())

        assert invoice_service.get_invoice(invoice.id, franchise_id="FR-001").id == invoice.id
        with pytest.raises(InvoiceNotFoundError):
            invoice_service.get_invoice(invoice.id, franchise_id="FR-002")
        with pytest.raises(InvoiceNotFoundError):
            invoice_service.get_invoice(424242)

    def test_list_invoices_bounds_and_order(self, db_session, make_stock):
        item = make_stock(quantity=100)
        early = self._invoice(item, at=T0)
        middle = self._invoice(item, at=T0 + timedelta(hours=1))
        late = self._invoice(item, at=T0 + timedelta(hours=2))
        self._invoice(item, franchise_id="FR-002", at=T0 + timedelta(hours=1))

        ids = [inv.id for inv in invoice_service.list_invoices("FR-001")]
        assert ids == [late.id, middle.id, early.id]

        window = invoice_service.list_invoices(
            "FR-001", created_after=T0 + timedelta(hours=1), created_before=T0 + timedelta(hours=2)
        )
        assert [inv.id for inv in window] == [middle.id]

        oldest_first = invoice_service.list_invoices("FR-001", newest_first=False)
        assert [inv.id for inv in oldest_first] == [early.id, middle.id, late.id]

    def test_list_invoices_by_status(self, db_session, make_stock):
        item = make_stock(quantity=100)
        packed = self._invoice(item)
        self._invoice(item)
        invoice_service.update_invoice_status(packed.id, "packed")

        assert [inv.id for inv in invoice_service.list_invoices("FR-001", status="packed")] == [packed.id]
        with pytest.raises(ValidationError):
            invoice_service.list_invoices("FR-001", status="shipped")


class TestStatusFlow:

    @pytest.mark.parametrize("from_status,to_status,allowed", [
        ("incoming", "packed", True),
        ("packed", "dispatched", True),
        ("incoming", "incoming", True),
        ("incoming", "dispatched", False),
        ("packed", "incoming", False),
        ("dispatched", "packed", False),
        ("incoming", "cancelled", False),
    ])
    def test_can_transition(self, from_status, to_status, allowed):
        assert invoice_service.can_transition(from_status, to_status) is allowed

    def test_forward_steps(self, db_session, make_stock):
        item = make_stock()
        invoice = invoice_service.create_invoice(
            franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 1}]
        )

        assert invoice_service.update_invoice_status(invoice.id, "packed").status == "packed"
        assert invoice_service.update_invoice_status(invoice.id, "packed").status == "packed"
        assert invoice_service.update_invoice_status(invoice.id, "dispatched").status == "dispatched"

        with pytest.raises(InvalidStatusTransition):
            invoice_service.update_invoice_status(invoice.id, "incoming")

    def test_skipping_a_step_is_rejected(self, db_session, make_stock):
        item = make_stock()
        invoice = invoice_service.create_invoice(
            franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 1}]
        )

        with pytest.raises(InvalidStatusTransition) as exc_info:
            invoice_service.update_invoice_status(invoice.id, "dispatched")
        assert exc_info.value.details["current_status"] == "incoming"
        assert db.session.get(Invoice, invoice.id).status == "incoming"

    def test_unknown_status_and_foreign_invoice(self, db_session, make_stock):
        item = make_stock()
        invoice = invoice_service.create_invoice(
            franchise_id="FR-001", lines=[{"stock_item_id": item.id, "quantity": 1}]
        )

        with pytest.raises(ValidationError):
            invoice_service.update_invoice_status(invoice.id, "lost")
        with pytest.raises(InvoiceNotFoundError):
            invoice_service.update_invoice_status(invoice.id, "packed", franchise_id="FR-002")
