"""
Tests for scan domain models, events and errors.
"""

import pytest

from nutriscan.domain.scan.events import (
    MessageKind,
    NavigateToRecord,
    PendingCreated,
    UserMessage,
)
from nutriscan.domain.scan.models import (
    ALLOWED_PENDING_TRANSITIONS,
    ExistenceResult,
    PendingProduct,
    PendingState,
    PipelineState,
    ProductRecord,
    RecordRef,
    ScanFailure,
    ScanOutcome,
)
from nutriscan.domain.shared.errors import (
    AdmissionRejectedError,
    BatchContractViolationError,
    CatalogNotFoundError,
    CatalogTransientError,
    DomainError,
    ExternalServiceError,
    InfrastructureError,
    PersistenceError,
    ScanDomainError,
    TimeoutError,
)
from nutriscan.domain.shared.value_objects import Barcode, PendingId, RecordId, UserId


# ═══════════════════════════════════════════════════════════
# PENDING PRODUCT
# ═══════════════════════════════════════════════════════════


class TestPendingProduct:
    """Test PendingProduct lifecycle rules."""

    @pytest.fixture
    def pending(self, sample_user_id: UserId, sample_barcode: Barcode) -> PendingProduct:
        return PendingProduct(
            local_id=PendingId.generate(),
            user_id=sample_user_id,
            barcode=sample_barcode,
        )

    def test_starts_created_and_loading(self, pending: PendingProduct) -> None:
        """New placeholders are CREATED and shown as loading."""
        assert pending.state == PendingState.CREATED
        assert pending.is_loading
        assert pending.record_id is None

    def test_forward_transitions(self, pending: PendingProduct) -> None:
        """The happy path is allowed step by step."""
        assert pending.can_transition_to(PendingState.AWAITING_CATALOG_DATA)
        assert not pending.can_transition_to(PendingState.CONFIRMED)

    def test_terminal_states_have_no_exit(self) -> None:
        """CONFIRMED and FAILED are terminal."""
        assert ALLOWED_PENDING_TRANSITIONS[PendingState.CONFIRMED] == frozenset()
        assert ALLOWED_PENDING_TRANSITIONS[PendingState.FAILED] == frozenset()

    def test_failed_reachable_from_every_non_terminal(self) -> None:
        """Any in-progress state may fail."""
        for state in (
            PendingState.CREATED,
            PendingState.AWAITING_CATALOG_DATA,
            PendingState.AWAITING_PERSISTENCE,
        ):
            assert PendingState.FAILED in ALLOWED_PENDING_TRANSITIONS[state]

    def test_confirmed_is_not_loading(self, pending: PendingProduct) -> None:
        """A confirmed card is interactive."""
        confirmed = pending.model_copy(
            update={"state": PendingState.CONFIRMED, "record_id": RecordId(value="rec_1")}
        )
        assert not confirmed.is_loading


# ═══════════════════════════════════════════════════════════
# EXISTENCE RESULT
# ═══════════════════════════════════════════════════════════


class TestExistenceResult:
    """Test ExistenceResult."""

    def test_not_found(self) -> None:
        """Missing records never need analysis."""
        result = ExistenceResult.from_ref(None)
        assert not result.found
        assert not result.needs_analysis

    def test_found_without_score_needs_analysis(self) -> None:
        """A record without health score still owes analysis."""
        result = ExistenceResult.from_ref(RecordRef(record_id=RecordId(value="rec_1")))
        assert result.found
        assert result.needs_analysis

    def test_found_with_score(self) -> None:
        """A scored record is complete."""
        result = ExistenceResult.from_ref(
            RecordRef(record_id=RecordId(value="rec_1"), health_score=72.0)
        )
        assert result.found
        assert not result.needs_analysis
        assert result.health_score == 72.0


def test_product_record_to_ref(sample_user_id: UserId, sample_barcode: Barcode) -> None:
    """Records project to the fields existence checks need."""
    record = ProductRecord(
        record_id=RecordId(value="rec_1"),
        user_id=sample_user_id,
        barcode=sample_barcode,
        product_name="Choco Bar",
        health_score=40.0,
    )
    assert record.to_ref() == RecordRef(record_id=RecordId(value="rec_1"), health_score=40.0)
    assert record.to_dict()["product_name"] == "Choco Bar"


def test_scan_outcome_failure_flag() -> None:
    """Only FAILED outcomes are failures."""
    failed = ScanOutcome(
        barcode="7622210449283",
        state=PipelineState.FAILED,
        failure=ScanFailure.CATALOG_NOT_FOUND,
    )
    ignored = ScanOutcome(barcode="7622210449283", state=PipelineState.IDLE, admitted=False)
    assert failed.is_failure
    assert not ignored.is_failure


# ═══════════════════════════════════════════════════════════
# EVENTS
# ═══════════════════════════════════════════════════════════


def test_event_type_is_class_name() -> None:
    """Events expose their name for logging and UI dispatch."""
    event = PendingCreated(local_id=PendingId.generate(), barcode="7622210449283")
    assert event.event_type == "PendingCreated"


def test_events_are_immutable() -> None:
    """Published events cannot be altered by handlers."""
    event = NavigateToRecord(record_id=RecordId(value="rec_1"), needs_analysis=True)
    with pytest.raises(Exception):
        event.needs_analysis = False  # type: ignore[misc]


def test_user_message_kind_values() -> None:
    """Message kinds serialize to lowercase strings."""
    message = UserMessage(kind=MessageKind.ERROR, title="Product not found", text="...")
    assert message.model_dump()["kind"] == "error"


# ═══════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════


class TestErrorHierarchy:
    """Test exception hierarchy."""

    def test_scan_errors(self) -> None:
        """Scan errors share a base."""
        assert issubclass(AdmissionRejectedError, ScanDomainError)
        assert issubclass(CatalogNotFoundError, ScanDomainError)
        assert issubclass(ScanDomainError, DomainError)

    def test_timeout_is_transient(self) -> None:
        """Timeouts are handled like any other transient catalog error."""
        assert issubclass(TimeoutError, CatalogTransientError)
        assert issubclass(CatalogTransientError, ExternalServiceError)

    def test_infrastructure_errors(self) -> None:
        """Store and batch failures are infrastructure errors."""
        assert issubclass(PersistenceError, InfrastructureError)
        assert issubclass(BatchContractViolationError, InfrastructureError)

    def test_admission_rejected_carries_barcode(self) -> None:
        """The rejected barcode is available to callers."""
        error = AdmissionRejectedError("7622210449283")
        assert error.barcode == "7622210449283"
        assert "7622210449283" in str(error)

    def test_batch_contract_violation_message(self) -> None:
        """The message names the batch and both counts."""
        error = BatchContractViolationError("existence-u1", expected=3, actual=2)
        assert str(error) == "Batch 'existence-u1' expected 3 results, got 2"
        assert (error.expected, error.actual) == (3, 2)
