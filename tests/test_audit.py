"""
Test suite for the hash-chained audit trail
"""

import pytest
from decimal import Decimal

from wallet_core.audit import AuditTrail, AuditEventType, AuditEvent
from wallet_core.storage import InMemoryStorage


class TestAuditTrail:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_log_event_chains_hashes(self):
        first = self.audit_trail.log_event(
            AuditEventType.ACCOUNT_CREATED, "account", "acc-1", {"email": "a@example.com"}
        )
        second = self.audit_trail.log_event(
            AuditEventType.ENTRY_RECORDED, "ledger_entry", "entry-1", {"amount": Decimal('10.50')}
        )

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert second.metadata == {"amount": "10.50"}
        assert first.verify_hash()
        assert second.verify_hash()

    def test_events_for_entity(self):
        self.audit_trail.log_event(AuditEventType.SAVINGS_OPENED, "savings_position", "s-1")
        self.audit_trail.log_event(AuditEventType.ENTRY_RECORDED, "ledger_entry", "e-1")
        self.audit_trail.log_event(AuditEventType.SAVINGS_WITHDRAWN, "savings_position", "s-1")

        events = self.audit_trail.get_events_for_entity("savings_position", "s-1")
        assert [e.event_type for e in events] == [
            AuditEventType.SAVINGS_OPENED, AuditEventType.SAVINGS_WITHDRAWN
        ]

    def test_verify_integrity_clean_chain(self):
        for i in range(5):
            self.audit_trail.log_event(AuditEventType.ENTRY_RECORDED, "ledger_entry", f"e-{i}")

        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 5
        assert self.audit_trail.count_events() == 5

    def test_verify_integrity_detects_tampering(self):
        event = self.audit_trail.log_event(
            AuditEventType.ENTRY_RECORDED, "ledger_entry", "e-1", {"amount": "10.00"}
        )
        self.audit_trail.log_event(AuditEventType.ENTRY_RECORDED, "ledger_entry", "e-2")

        tampered = self.storage.load("audit_events", event.id)
        tampered["metadata"]["amount"] = "1000000.00"
        self.storage.save("audit_events", event.id, tampered)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert result["hash_errors"][0]["event_id"] == event.id

    def test_rolled_back_event_leaves_no_gap(self):
        self.audit_trail.log_event(AuditEventType.ENTRY_RECORDED, "ledger_entry", "e-1")

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.ENTRY_RECORDED, "ledger_entry", "e-2")
                raise RuntimeError("operation failed")

        third = self.audit_trail.log_event(AuditEventType.ENTRY_RECORDED, "ledger_entry", "e-3")
        assert third.sequence == 2
        assert self.audit_trail.verify_integrity()["valid"]

    def test_round_trip_through_dict(self):
        event = self.audit_trail.log_event(AuditEventType.REFERRAL_CREATED, "referral", "r-1", user_id="u-1")
        restored = AuditEvent.from_dict(self.storage.load("audit_events", event.id))
        assert restored.user_id == "u-1"
        assert restored.verify_hash()
