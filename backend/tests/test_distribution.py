"""
DistributionWorkflow tests.

Verifies:
- Shopify, PR and Transfer dispatches write balances, movements and records together
- Nothing is written before confirm (abandoned runs leave no trace)
- Forward transitions are guarded; backward moves are free
- Capacity errors keep the queue unchanged
- A failed confirm rolls back and stays in DetailsCapture
"""

from datetime import timedelta

import pytest

from boutique.models import StockMovement, Transaction, AuditEvent
from boutique.extensions import db
from boutique.services import catalog_service
from boutique.services.distribution_service import (
    DistributionWorkflow,
    WorkflowState,
    DispatchValidationError,
    InsufficientStockError,
    CodeNotRecognizedError,
    dispatch,
)
from boutique.services.ledger_service import StockLedger
from boutique.services.movement_service import MovementRecorder
from boutique.time_utils import utcnow


def _to_details(workflow):
    workflow.advance()
    workflow.advance()
    assert workflow.state == WorkflowState.DETAILS_CAPTURE


def _movement_count():
    return db.session.query(StockMovement).count()


# =============================================================================
# CHANNEL DISPATCHES
# =============================================================================


class TestChannelDispatch:

    def test_shopify_order(self, dress):
        workflow = DistributionWorkflow("Shopify")
        workflow.add("SKU-1", "M", 5)
        _to_details(workflow)
        workflow.capture_details(recipient_name="Layla", order_reference="SHOP-100")
        result = workflow.confirm("Omar")

        assert workflow.state == WorkflowState.CONFIRMED
        assert StockLedger().balances("SKU-1", "M") == (10, 35)

        movement = db.session.get(StockMovement, result.movement_ids[0])
        assert movement.kind == "Outward"
        assert movement.channel == "Shopify"
        assert movement.quantity_delta == -5
        assert movement.reference == "SHOP-100"
        assert "Shopify" in movement.note

        tx = db.session.get(Transaction, result.transaction_id)
        assert tx.type == "Shopify"
        assert tx.external_order_id == "SHOP-100"
        assert tx.recipient_name == "Layla"
        assert tx.lines[0].unit_price_cents == 6500
        assert tx.lines[0].movement_id == movement.id
        assert tx.total_cents == 32500
        assert tx.payment_method == "N/A"

    def test_pr_gift_is_free(self, dress):
        workflow = DistributionWorkflow("PR")
        workflow.add("SKU-1", "M", 2)
        _to_details(workflow)
        workflow.capture_details(recipient_name="Mona", order_reference="PR-7")
        result = workflow.confirm("Omar")

        tx = db.session.get(Transaction, result.transaction_id)
        assert tx.type == "PR"
        assert tx.lines[0].unit_price_cents == 0
        assert tx.total_cents == 0
        assert StockLedger().balances("SKU-1", "M") == (10, 38)

    def test_discount_becomes_order_discount(self, dress):
        workflow = DistributionWorkflow("FnF")
        workflow.add("SKU-1", "M", 2)
        _to_details(workflow)
        workflow.capture_details(recipient_name="Aunt Rana", order_reference="FNF-3", discount_percent=25)
        result = workflow.confirm("Omar")

        tx = db.session.get(Transaction, result.transaction_id)
        assert tx.subtotal_cents == 13000
        assert tx.total_cents == 9750
        assert float(tx.order_discount_percent) == 25.0

    def test_transfer_gets_reference_and_no_transaction(self, dress):
        workflow = DistributionWorkflow("Transfer")
        workflow.add("SKU-1", "M", 10)
        _to_details(workflow)
        workflow.capture_details()
        result = workflow.confirm("Omar")

        assert result.reference == "TRF-0001"
        assert result.transaction_id is None
        assert db.session.query(Transaction).count() == 0
        assert StockLedger().balances("SKU-1", "M") == (20, 30)

        movement = db.session.get(StockMovement, result.movement_ids[0])
        assert movement.kind == "Transfer"
        assert movement.location == "Both"
        assert (movement.store_delta, movement.warehouse_delta) == (10, -10)

    def test_audit_event_written(self, dress):
        dispatch("Shopify", [{"code": "SKU-1-M", "quantity": 3}], actor="Omar",
                 recipient_name="Layla", order_reference="SHOP-101")

        event = db.session.query(AuditEvent).filter_by(action="Inventory Out").one()
        assert event.actor == "Omar"
        assert "SHOP-101" in event.details

    def test_sale_is_not_a_dispatch_channel(self, db_session):
        with pytest.raises(DispatchValidationError):
            DistributionWorkflow("Sale")


class TestRecordDetails:

    def test_transaction_is_not_older_than_its_movements(self, dress):
        # Movement clock runs ahead of the wall clock
        latest = db.session.query(StockMovement).order_by(StockMovement.id.desc()).first()
        latest.occurred_at = utcnow() + timedelta(minutes=5)
        db.session.commit()

        result = dispatch(
            "Shopify", [{"code": "SKU-1-M", "quantity": 2}],
            actor="Omar", recipient_name="Layla", order_reference="SHOP-101",
        )

        movement = db.session.get(StockMovement, result.movement_ids[0])
        tx = db.session.get(Transaction, result.transaction_id)
        assert tx.occurred_at >= movement.occurred_at
        assert movement.id in [m.id for m in MovementRecorder().list_movements(end=tx.occurred_at)]

    def test_long_notes_are_kept_whole(self, dress):
        notes = "Gift wrap, deliver after 6pm. " * 20
        result = dispatch(
            "Shopify", [{"code": "SKU-1-M"}],
            actor="Omar", recipient_name="Layla", order_reference="SHOP-102", notes=notes,
        )

        tx = db.session.get(Transaction, result.transaction_id)
        assert tx.notes == notes.strip()
        assert "SHOP-102" in db.session.get(StockMovement, result.movement_ids[0]).note

    def test_recipient_longer_than_column_rejected(self, dress):
        workflow = DistributionWorkflow("FnF")
        workflow.add("SKU-1", "M", 1)
        _to_details(workflow)

        with pytest.raises(DispatchValidationError) as exc:
            workflow.capture_details(recipient_name="A" * 129, order_reference="FNF-1")
        assert exc.value.details == {"field": "recipient_name"}
        with pytest.raises(DispatchValidationError):
            workflow.capture_details(recipient_name="Huda", order_reference="R" * 65)

        workflow.capture_details(recipient_name="A" * 128, order_reference="R" * 64)
        workflow.confirm("Omar")
        assert StockLedger().balances("SKU-1", "M") == (10, 39)


# =============================================================================
# ATOMICITY
# =============================================================================


class TestNoWritesBeforeConfirm:

    def test_abandoned_workflow_leaves_no_trace(self, dress):
        before = _movement_count()
        workflow = DistributionWorkflow("Shopify")
        workflow.scan("SKU-1-M")
        workflow.scan("SKU-1-M")
        _to_details(workflow)
        workflow.capture_details(recipient_name="Layla", order_reference="SHOP-100")
        del workflow

        assert _movement_count() == before
        assert db.session.query(Transaction).count() == 0
        assert StockLedger().balances("SKU-1", "M") == (10, 40)

    def test_failed_confirm_rolls_back(self, dress):
        workflow = DistributionWorkflow("Shopify")
        workflow.add("SKU-1", "M", 5)
        workflow.add("SKU-1", "1", 5)
        _to_details(workflow)
        workflow.capture_details(recipient_name="Layla", order_reference="SHOP-102")

        # Someone else empties the warehouse for size 1 in the meantime
        catalog_service.set_variant_stock("SKU-1", "1", warehouse_qty=2, actor="Admin")

        with pytest.raises(InsufficientStockError):
            workflow.confirm("Omar")

        assert workflow.state == WorkflowState.DETAILS_CAPTURE
        assert [i.quantity for i in workflow.items] == [5, 5]
        assert StockLedger().balances("SKU-1", "M") == (10, 40)
        assert db.session.query(StockMovement).filter_by(kind="Outward").count() == 0
        assert db.session.query(Transaction).count() == 0


# =============================================================================
# GUARDS
# =============================================================================


class TestGuards:

    def test_cannot_advance_empty_queue(self, dress):
        workflow = DistributionWorkflow("Shopify")
        with pytest.raises(DispatchValidationError):
            workflow.advance()
        assert workflow.state == WorkflowState.SCANNING

    def test_confirm_requires_details_state(self, dress):
        workflow = DistributionWorkflow("Shopify")
        workflow.add("SKU-1", "M", 1)
        with pytest.raises(DispatchValidationError):
            workflow.confirm("Omar")

    @pytest.mark.parametrize("channel,missing", [
        ("Shopify", {"order_reference": "SHOP-1"}),
        ("PreOrder", {"recipient_name": "Layla"}),
        ("FnF", {"order_reference": "FNF-1"}),
    ])
    def test_mandatory_details(self, dress, channel, missing):
        workflow = DistributionWorkflow(channel)
        workflow.add("SKU-1", "M", 1)
        _to_details(workflow)
        workflow.capture_details(**missing)

        with pytest.raises(DispatchValidationError):
            workflow.confirm("Omar")
        assert workflow.state == WorkflowState.DETAILS_CAPTURE
        assert StockLedger().balances("SKU-1", "M") == (10, 40)

    def test_back_to_scanning_allows_edits(self, dress):
        workflow = DistributionWorkflow("Shopify")
        workflow.add("SKU-1", "M", 1)
        _to_details(workflow)

        workflow.go_back(WorkflowState.SCANNING)
        workflow.add("SKU-1", "1", 2)
        workflow.remove_item("SKU-1", "M")

        assert [(i.size_internal, i.quantity) for i in workflow.items] == [("1", 2)]

    def test_cannot_go_forward_with_go_back(self, dress):
        workflow = DistributionWorkflow("Shopify")
        workflow.add("SKU-1", "M", 1)
        workflow.advance()
        with pytest.raises(DispatchValidationError):
            workflow.go_back(WorkflowState.DETAILS_CAPTURE)

    def test_confirmed_is_terminal(self, dress):
        workflow = DistributionWorkflow("Transfer")
        workflow.add("SKU-1", "M", 1)
        _to_details(workflow)
        workflow.confirm("Omar")

        with pytest.raises(DispatchValidationError):
            workflow.go_back()
        with pytest.raises(DispatchValidationError):
            workflow.confirm("Omar")


# =============================================================================
# SCANNING AND CAPACITY
# =============================================================================


class TestScanning:

    def test_repeat_scans_increment_one_line(self, dress):
        workflow = DistributionWorkflow("Shopify")
        for _ in range(3):
            workflow.scan("  sku-1-m ")

        assert len(workflow.items) == 1
        assert workflow.items[0].quantity == 3

    def test_explicit_barcode_scans(self, dress):
        catalog_service.set_variant_barcode("SKU-1", "M", "6291041500213", actor="Admin")
        workflow = DistributionWorkflow("Shopify")
        item = workflow.scan("6291041500213")
        assert item.key == ("SKU-1", "M")

    def test_unknown_code(self, dress):
        workflow = DistributionWorkflow("Shopify")
        with pytest.raises(CodeNotRecognizedError):
            workflow.scan("NOPE-42")
        assert workflow.items == []

    def test_out_of_stock_scan(self, dress):
        workflow = DistributionWorkflow("Shopify")
        with pytest.raises(InsufficientStockError):
            workflow.scan("SKU-1-3")

    def test_capacity_error_keeps_queue(self, dress):
        workflow = DistributionWorkflow("Shopify")
        workflow.add("SKU-1", "1", 5)
        with pytest.raises(InsufficientStockError) as exc:
            workflow.scan("SKU-1-1")

        assert exc.value.details["warehouse_qty"] == 5
        assert workflow.items[0].quantity == 5

    def test_set_quantity_checks_capacity(self, dress):
        workflow = DistributionWorkflow("Shopify")
        workflow.add("SKU-1", "M", 2)
        with pytest.raises(InsufficientStockError):
            workflow.set_quantity("SKU-1", "M", 41)
        workflow.adjust_quantity("SKU-1", "M", 3)

        assert workflow.items[0].quantity == 5

    @pytest.mark.parametrize("quantity", [0, -1, 2.5])
    def test_quantity_must_be_positive_integer(self, dress, quantity):
        workflow = DistributionWorkflow("Shopify")
        workflow.add("SKU-1", "M", 2)
        with pytest.raises(DispatchValidationError):
            workflow.set_quantity("SKU-1", "M", quantity)
        assert workflow.items[0].quantity == 2
