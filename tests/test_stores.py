"""Reference, cache and sync-status store behaviour."""

from __future__ import annotations

from unittest.mock import patch

from conftest import BASE_TIME, add_references

from implant_ledger.store.cache import CacheStore
from implant_ledger.store.references import ReferenceStore
from implant_ledger.store.sync_status import SyncStatusStore


def _insert_cache(session, tx_hash="0xA", patient_id="P-1", record_type="PLACEMENT", **data):
    payload = {"location": "14", "placementDate": "2024-03-01", "dentistId": "D-1", **data}
    return CacheStore(session).insert(
        patient_id=patient_id,
        dentist_id="D-1",
        tx_hash=tx_hash,
        record_type=record_type,
        record_data=payload,
        ledger_record_id=tx_hash.lower(),
    )


class TestCacheStore:
    def test_insert_is_idempotent_per_tx_hash(self, session):
        assert _insert_cache(session) is True
        session.commit()
        assert _insert_cache(session) is False
        session.commit()

        assert len(CacheStore(session).list_by_patient("P-1")) == 1

    def test_lost_insert_race_is_a_no_op(self, session_factory):
        with session_factory() as first:
            assert _insert_cache(first) is True
            first.commit()

        with session_factory() as second:
            # Simulate losing the existence check to a concurrent writer.
            with patch.object(CacheStore, "get", return_value=None):
                assert _insert_cache(second) is False

        with session_factory() as check:
            assert len(CacheStore(check).list_by_patient("P-1")) == 1

    def test_insert_derives_columns_by_record_type(self, session):
        _insert_cache(session, tx_hash="0xP")
        _insert_cache(
            session,
            tx_hash="0xR",
            record_type="REMOVAL",
            removalDate="2024-06-01",
            removalReason="fracture",
        )
        session.commit()

        cache = CacheStore(session)
        placed, removed = cache.get("0xP"), cache.get("0xR")
        assert (placed.location, placed.placement_date, placed.removal_date) == ("14", "2024-03-01", None)
        assert (removed.placement_date, removed.removal_date) == (None, "2024-06-01")

    def test_corrected_entries_are_hidden_from_live_views(self, session):
        _insert_cache(session, tx_hash="0xA")
        _insert_cache(session, tx_hash="0xB")
        session.commit()

        cache = CacheStore(session)
        assert cache.mark_corrected("0xA", "0xC") is True
        session.commit()
        assert cache.mark_corrected("0xA", "0xD") is False

        assert cache.get_live("0xA") is None
        assert cache.get("0xA").corrected_by_tx_hash == "0xC"
        assert [e.tx_hash for e in cache.list_by_patient("P-1")] == ["0xB"]
        assert {e.tx_hash for e in cache.list_by_patient("P-1", include_corrected=True)} == {"0xA", "0xB"}
        assert [e.tx_hash for e in cache.list_by_dentist("D-1")] == ["0xB"]

    def test_claimed_record_ids(self, session):
        _insert_cache(session, tx_hash="0xA")
        _insert_cache(session, tx_hash="0xB", patient_id="P-2")
        session.commit()

        assert CacheStore(session).claimed_record_ids("P-1") == {"0xa"}


class TestReferenceStore:
    def test_list_unconfirmed_excludes_cached_and_is_oldest_first(self, session):
        add_references(session, "P-1", [("0xA", "PLACEMENT"), ("0xB", "REMOVAL"), ("0xC", "PLACEMENT")])
        _insert_cache(session, tx_hash="0xB", record_type="REMOVAL")
        session.commit()

        pending = ReferenceStore(session).list_unconfirmed("P-1")

        assert [r.tx_hash for r in pending] == ["0xA", "0xC"]

    def test_list_patient_ids_is_distinct(self, session):
        add_references(session, "P-2", [("0xA", "PLACEMENT"), ("0xB", "REMOVAL")])
        add_references(session, "P-1", [("0xC", "PLACEMENT")])

        assert ReferenceStore(session).list_patient_ids() == ["P-1", "P-2"]

    def test_mark_corrected(self, session):
        add_references(session, "P-1", [("0xA", "PLACEMENT")])
        store = ReferenceStore(session)

        assert store.mark_corrected("0xA", "0xB") is True
        assert store.mark_corrected("0xmissing", "0xB") is False
        session.commit()

        ref = store.get("0xA")
        assert ref.is_corrected is True
        assert ref.corrected_by_tx_hash == "0xB"

    def test_second_correction_of_same_reference_loses(self, session):
        add_references(session, "P-1", [("0xA", "PLACEMENT")])
        store = ReferenceStore(session)
        assert store.mark_corrected("0xA", "0xB") is True
        session.commit()

        assert store.mark_corrected("0xA", "0xC") is False
        session.commit()

        assert store.get("0xA").corrected_by_tx_hash == "0xB"

    def test_insert_already_superseded(self, session):
        ref = ReferenceStore(session).insert(
            patient_id="P-1", dentist_id="D-1", tx_hash="0xC", record_type="PLACEMENT", corrected_by_tx_hash="0xB"
        )
        session.commit()

        assert (ref.is_corrected, ref.corrected_by_tx_hash) == (True, "0xB")
        assert [r.tx_hash for r in ReferenceStore(session).list_unconfirmed("P-1")] == ["0xC"]


class TestSyncStatusStore:
    def test_default_row_is_created_enabled(self, session):
        row = SyncStatusStore(session, default_frequency_hours=6).get()
        session.commit()

        assert row.sync_enabled is True
        assert row.last_sync is None
        assert row.sync_frequency_hours == 6

    def test_toggle_and_touch(self, session):
        store = SyncStatusStore(session)
        store.set_enabled(False, frequency_hours=4)
        store.touch_last_sync(BASE_TIME)
        session.commit()

        row = store.get()
        assert row.sync_enabled is False
        assert row.sync_frequency_hours == 4
        assert row.last_sync.replace(tzinfo=None) == BASE_TIME.replace(tzinfo=None)
        assert store.get().id == row.id
