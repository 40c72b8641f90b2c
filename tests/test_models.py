"""
Tests for Pocket Ledger models

Test strategy:
1. Unit tests for the pydantic models (entries, commands, statuses)
2. Integration tests for flows live in test_orchestrator.py
3. No real model is ever loaded in tests (scripted engines only)
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from pocket_ledger.models.ledger import DEFAULT_CATEGORY, LedgerEntry
from pocket_ledger.models.commands import (
    Command,
    ExpenseItem,
    GetAbovePrice,
    InsertMany,
    OtherQuestion,
    SearchByName,
)
from pocket_ledger.models.results import AssistantStatus, StatusKind
from pocket_ledger.models.session import GenerationResult, SessionConfig
from pocket_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestLedgerEntry:
    """Tests for the persisted entry model."""

    def test_create_computes_total(self):
        """Test create() derives the total from quantity and unit price."""
        entry = LedgerEntry.create("mango", Decimal("20"), quantity=4)
        assert entry.total_price == Decimal("80")
        assert entry.category == DEFAULT_CATEGORY
        assert entry.id is None

    def test_create_keeps_decimal_precision(self):
        """Test fractional prices multiply exactly."""
        entry = LedgerEntry.create("milk", Decimal("0.10"), quantity=3)
        assert entry.total_price == Decimal("0.30")

    def test_mismatched_total_rejected(self):
        """Test a total that is not quantity x price fails validation."""
        with pytest.raises(ValidationError):
            LedgerEntry(
                item_name="rice",
                quantity=2,
                price_per_unit=Decimal("60"),
                total_price=Decimal("100"),
            )

    def test_negative_price_rejected(self):
        """Test a negative unit price fails validation."""
        with pytest.raises(ValidationError):
            LedgerEntry.create("rice", Decimal("-1"))

    def test_zero_quantity_rejected(self):
        """Test quantity must be at least 1."""
        with pytest.raises(ValidationError):
            LedgerEntry.create("rice", Decimal("60"), quantity=0)

    def test_blank_name_rejected(self):
        """Test whitespace is stripped before the length check."""
        with pytest.raises(ValidationError):
            LedgerEntry.create("   ", Decimal("60"))

    def test_entries_are_frozen(self):
        """Test entries cannot be mutated in place."""
        entry = LedgerEntry.create("tea", Decimal("10"))
        with pytest.raises(ValidationError):
            entry.quantity = 5

    def test_updated_recomputes_total(self):
        """Test updated() keeps identity and creation time but recomputes the total."""
        entry = LedgerEntry.create("tea", Decimal("10")).model_copy(update={"id": 7})
        changed = entry.updated(quantity=3)
        assert changed.id == 7
        assert changed.created_at == entry.created_at
        assert changed.total_price == Decimal("30")

    def test_summary(self):
        """Test the short form used in batch reports."""
        entry = LedgerEntry.create("mango", Decimal("20"), quantity=4)
        assert entry.summary() == "mango (4 x 20)"


class TestCommandModels:
    """Tests for the decoded command variants."""

    def test_expense_item_accepts_wire_names(self):
        """Test camelCase names from the model reply populate the fields."""
        item = ExpenseItem.model_validate(
            {"itemName": "mango", "quantity": 4, "pricePerUnit": 20}
        )
        assert item.item_name == "mango"
        assert item.price_per_unit == Decimal("20")

    def test_expense_item_defaults(self):
        """Test a missing category stays unset and quantity defaults to one."""
        item = ExpenseItem.model_validate({"itemName": "tea"})
        assert item.category is None
        assert item.quantity == 1
        assert item.price_per_unit is None

    def test_blank_category_is_unset(self):
        """Test an empty category string counts as not given."""
        item = ExpenseItem.model_validate({"itemName": "tea", "category": "  "})
        assert item.category is None

    def test_explicit_category_kept(self):
        """Test a category the model spelled out is kept as given."""
        item = ExpenseItem.model_validate({"itemName": "tea", "category": "General"})
        assert item.category == "General"

    def test_wire_names_for_filters(self):
        """Test minPrice and nameQuery aliases."""
        assert GetAbovePrice.model_validate({"minPrice": 50}).min_price == Decimal("50")
        assert SearchByName.model_validate({"nameQuery": "rice"}).query == "rice"

    def test_command_discriminator(self):
        """Test the kind field selects the variant."""
        adapter = TypeAdapter(Command)
        command = adapter.validate_python(
            {"kind": "insert_many", "items": [{"itemName": "a", "pricePerUnit": 1}]}
        )
        assert isinstance(command, InsertMany)
        assert command.items[0].item_name == "a"

        other = adapter.validate_python(
            {"kind": "other_question", "original_question": "hi", "raw_model_text": "hello"}
        )
        assert isinstance(other, OtherQuestion)

    def test_unknown_kind_rejected(self):
        """Test a kind outside the closed set fails validation."""
        with pytest.raises(ValidationError):
            TypeAdapter(Command).validate_python({"kind": "delete_everything"})


class TestStatusModels:
    """Tests for the observable status value."""

    def test_constructors(self):
        """Test each constructor sets its kind."""
        assert AssistantStatus.idle().kind == StatusKind.IDLE
        assert AssistantStatus.loading().kind == StatusKind.LOADING
        assert AssistantStatus.processing().kind == StatusKind.PROCESSING_LLM
        assert AssistantStatus.show_message("ok").message == "ok"

    def test_is_error(self):
        """Test only SHOW_ERROR counts as an error."""
        assert AssistantStatus.show_error("boom").is_error
        assert not AssistantStatus.show_message("fine").is_error

    def test_statuses_compare_by_value(self):
        """Test two statuses with the same kind and message are equal."""
        assert AssistantStatus.show_message("x") == AssistantStatus.show_message("x")


class TestSessionModels:
    """Tests for session configuration and results."""

    def test_session_config_defaults(self):
        """Test the sampling defaults."""
        config = SessionConfig(model_path="m.gguf")
        assert config.min_p == 0.05
        assert config.temperature == 1.5
        assert config.context_size == 2048
        assert config.chat_template == ""
        assert config.store_history is False

    def test_session_config_requires_path(self):
        """Test an empty model path is rejected."""
        with pytest.raises(ValidationError):
            SessionConfig(model_path="")

    def test_session_config_frozen(self):
        """Test the config cannot change after creation."""
        config = SessionConfig(model_path="m.gguf")
        with pytest.raises(ValidationError):
            config.temperature = 0.1

    def test_generation_result_rejects_negative_speed(self):
        """Test metrics must be non-negative."""
        with pytest.raises(ValidationError):
            GenerationResult(
                final_text="",
                tokens_per_second=-1,
                elapsed_seconds=0,
                context_tokens_used=0,
            )


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.MODEL_LOADED,
            description="Model loaded",
        )
        assert event.event_id is not None
        assert event.timestamp is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to a structured log dict."""
        correlation_id = uuid4()
        event = AuditEventBuilder.generation_started(812, correlation_id)
        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "generation_started"
        assert log_dict["correlation_id"] == str(correlation_id)
        assert log_dict["details"] == {"prompt_length": 812}

    def test_audit_event_to_row(self):
        """Test the row matches the audit table's ten columns."""
        event = AuditEventBuilder.entry_rejected("tea", "Missing name or price.", None)
        row = event.to_row()
        assert len(row) == 10
        assert row[2] == "entry_rejected"
        assert row[3] == "warning"
        assert row[6] is None

    def test_builder_model_load_failed(self):
        """Test load failures are errors and carry the message."""
        event = AuditEventBuilder.model_load_failed("m.gguf", "bad magic", uuid4())
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "bad magic"
        assert event.entity_id == "m.gguf"

    def test_builder_fallback_interpretation(self):
        """Test an other_question interpretation is recorded as a fallback."""
        event = AuditEventBuilder.response_interpreted("other_question", uuid4())
        assert event.event_type == AuditEventType.INTERPRETATION_FALLBACK

        event = AuditEventBuilder.response_interpreted("insert_one", uuid4())
        assert event.event_type == AuditEventType.RESPONSE_INTERPRETED

    def test_entry_event_types(self):
        """Test the entry events are exactly the outcomes an insert can have."""
        entry_types = {t.value for t in AuditEventType if t.value.startswith("entry_")}
        assert entry_types == {"entry_inserted", "entry_rejected"}
