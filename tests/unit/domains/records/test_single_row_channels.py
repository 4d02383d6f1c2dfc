"""Tests for the personal info, vitals and lifestyle channels."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from phr.core.session.identity import SessionIdentity
from phr.core.storage.postgrest_store import PostgRESTRecordStore
from phr.core.storage.store import StoreConnectionError, StoreResponseError
from phr.domains.records.channels.lifestyle import LifestyleChannel
from phr.domains.records.channels.personal import PersonalInfoChannel
from phr.domains.records.channels.vitals import VitalsChannel
from phr.domains.records.errors import (
    ExistenceCheckFailed,
    InvalidRecord,
    NotAuthenticated,
    WriteFailed,
)
from phr.domains.records.models import LifestyleInfo, PersonalInfo, VitalsInfo


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def personal(identity, fake_store, sink) -> PersonalInfoChannel:
    return PersonalInfoChannel(identity, fake_store, sink)


@pytest.fixture
def vitals(identity, fake_store, sink) -> VitalsChannel:
    return VitalsChannel(identity, fake_store, sink)


class TestLoad:
    def test_starts_loading_with_defaults(self, personal):
        assert personal.is_loading is True
        assert personal.cache == PersonalInfo()

    def test_missing_row_keeps_defaults(self, personal):
        _run(personal.load())
        assert personal.is_loading is False
        assert personal.cache == PersonalInfo()

    def test_existing_row_replaces_cache(self, personal, fake_store):
        row = fake_store.seed("health_personal_info", {
            "user_id": "user-1", "full_name": "Ada Lovelace", "age": 36,
        })
        _run(personal.load())
        assert personal.cache.full_name == "Ada Lovelace"
        assert personal.cache.age == 36
        assert personal.cache.id == row["id"]
        # Columns missing from the row fall back to defaults
        assert personal.cache.children == 0

    def test_read_failure_keeps_cache_and_clears_flag(self, personal, fake_store, sink):
        fake_store.fail["find_one"] = StoreConnectionError("offline")
        _run(personal.load())
        assert personal.is_loading is False
        assert personal.cache == PersonalInfo()
        assert sink.last is None

    def test_malformed_row_is_ignored(self, personal, fake_store):
        fake_store.seed("health_personal_info", {"user_id": "user-1", "age": "old"})
        _run(personal.load())
        assert personal.is_loading is False
        assert personal.cache == PersonalInfo()

    def test_signed_out_load_makes_no_calls(self, fake_store, sink):
        channel = PersonalInfoChannel(SessionIdentity(), fake_store, sink)
        _run(channel.load())
        assert channel.is_loading is False
        assert sum(fake_store.calls.values()) == 0

    def test_reset_restores_defaults(self, personal, fake_store):
        fake_store.seed("health_personal_info", {"user_id": "user-1", "full_name": "Ada"})
        _run(personal.load())
        personal.reset()
        assert personal.cache == PersonalInfo()
        assert personal.is_loading is True


class TestUpdate:
    def test_first_save_inserts(self, personal, fake_store, sink):
        ok = _run(personal.update({"full_name": "Ada", "age": 36}))
        assert ok is True
        assert fake_store.calls["insert"] == 1
        assert fake_store.calls["update"] == 0
        stored = fake_store.rows("health_personal_info", "user-1")
        assert len(stored) == 1
        assert stored[0]["full_name"] == "Ada"
        assert personal.cache.id == stored[0]["id"]
        assert personal.cache.user_id == "user-1"
        assert sink.last.title == "Personal information updated"
        assert sink.last.description == "Your personal details have been saved"
        assert personal.last_error is None

    def test_second_save_updates_same_row(self, personal, fake_store):
        async def _flow():
            await personal.update({"full_name": "Ada"})
            await personal.update({"age": 37})
        _run(_flow())
        assert fake_store.calls["insert"] == 1
        assert fake_store.calls["update"] == 1
        stored = fake_store.rows("health_personal_info", "user-1")
        assert len(stored) == 1
        # Partial update kept the earlier field
        assert stored[0]["full_name"] == "Ada"
        assert stored[0]["age"] == 37

    def test_updates_row_created_elsewhere(self, personal, fake_store):
        fake_store.seed("health_personal_info", {"user_id": "user-1", "full_name": "Old"})
        assert _run(personal.update({"full_name": "New"})) is True
        assert fake_store.calls["insert"] == 0
        assert fake_store.rows("health_personal_info")[0]["full_name"] == "New"

    def test_signed_out_fails_without_store_calls(self, fake_store, sink):
        channel = PersonalInfoChannel(SessionIdentity(), fake_store, sink)
        assert _run(channel.update({"full_name": "Ada"})) is False
        assert sum(fake_store.calls.values()) == 0
        assert isinstance(channel.last_error, NotAuthenticated)
        assert sink.last.title == "Authentication required"
        assert sink.last.description == "Please log in to save personal information"
        assert sink.last.severity == "error"

    def test_write_failure_leaves_cache_unchanged(self, personal, fake_store, sink):
        fake_store.fail["insert"] = StoreResponseError("rejected")
        assert _run(personal.update({"full_name": "Ada"})) is False
        assert personal.cache == PersonalInfo()
        assert isinstance(personal.last_error, WriteFailed)
        assert sink.last.title == "Update failed"
        assert sink.last.description == "Could not save personal information"

    def test_existence_check_failure_makes_no_write(self, personal, fake_store):
        fake_store.fail["find_one"] = StoreConnectionError("offline")
        assert _run(personal.update({"full_name": "Ada"})) is False
        assert fake_store.write_calls == 0
        assert isinstance(personal.last_error, ExistenceCheckFailed)

    @pytest.mark.parametrize(
        "changes",
        [{"age": -1}, {"children": -2}, {"age": "36"}, {"shoe_size": 44}],
    )
    def test_invalid_changes_rejected_before_store(self, personal, fake_store, changes):
        assert _run(personal.update(changes)) is False
        assert sum(fake_store.calls.values()) == 0
        assert isinstance(personal.last_error, InvalidRecord)

    def test_failure_then_success_clears_last_error(self, personal, fake_store):
        fake_store.fail["insert"] = StoreResponseError("rejected")
        _run(personal.update({"full_name": "Ada"}))
        del fake_store.fail["insert"]
        assert _run(personal.update({"full_name": "Ada"})) is True
        assert personal.last_error is None

    def test_broken_sink_does_not_fail_the_write(self, identity, fake_store):
        class BrokenSink:
            def notify(self, notification):
                raise RuntimeError("toast service down")

        channel = PersonalInfoChannel(identity, fake_store, BrokenSink())
        assert _run(channel.update({"full_name": "Ada"})) is True
        assert channel.cache.full_name == "Ada"

    def test_concurrent_first_saves_create_one_row(self, personal, fake_store):
        async def _flow():
            return await asyncio.gather(
                personal.update({"full_name": "Ada"}),
                personal.update({"age": 36}),
            )
        assert _run(_flow()) == [True, True]
        assert len(fake_store.rows("health_personal_info", "user-1")) == 1
        assert fake_store.calls["insert"] == 1
        assert fake_store.calls["update"] == 1


class TestVitals:
    def test_bmi_derived_from_merged_values(self, vitals, fake_store):
        assert _run(vitals.update({"weight": 75})) is True
        assert vitals.cache.bmi == 26.0  # 75 / 1.7^2 = 25.95
        assert fake_store.rows("health_vitals")[0]["bmi"] == 26.0

    def test_caller_bmi_is_ignored(self, vitals, fake_store):
        assert _run(vitals.update({"height": 180, "weight": 75, "bmi": 99.9})) is True
        assert vitals.cache.bmi == 23.1
        assert fake_store.rows("health_vitals")[0]["bmi"] == 23.1

    def test_stale_stored_bmi_is_recomputed_on_load(self, vitals, fake_store):
        fake_store.seed("health_vitals", {
            "user_id": "user-1", "height": 180, "weight": 75, "bmi": 40.0,
        })
        _run(vitals.load())
        assert vitals.cache.bmi == 23.1

    def test_zero_height_keeps_stored_bmi(self, vitals, fake_store):
        fake_store.seed("health_vitals", {
            "user_id": "user-1", "height": 0, "weight": 75, "bmi": 22.0,
        })
        _run(vitals.load())
        assert vitals.cache.bmi == 22.0

    def test_success_notification(self, vitals, sink):
        _run(vitals.update({"blood_group": "O-"}))
        assert sink.last.title == "Vitals information updated"
        assert sink.last.description == "Your vitals have been updated successfully"


class TestLifestyle:
    def test_update_round(self, identity, fake_store, sink):
        channel = LifestyleChannel(identity, fake_store, sink)
        assert _run(channel.update({"smoking_status": "Former"})) is True
        assert channel.cache == LifestyleInfo(
            smoking_status="Former", id=channel.cache.id, user_id="user-1",
        )
        assert sink.last.title == "Lifestyle information updated"
        assert sink.last.description == "Your lifestyle information has been saved"

    def test_failure_message(self, identity, fake_store, sink):
        fake_store.fail["insert"] = StoreResponseError("rejected")
        channel = LifestyleChannel(identity, fake_store, sink)
        assert _run(channel.update({"activity_level": "Active"})) is False
        assert sink.last.description == "Could not save lifestyle information"

    def test_signed_out_prompt(self, fake_store, sink):
        channel = VitalsChannel(SessionIdentity(), fake_store, sink)
        _run(channel.update({"weight": 70}))
        assert sink.last.description == "Please log in to save vitals information"


def test_vitals_defaults_are_consistent():
    assert VitalsInfo().bmi == 23.5


class TestVitalsOverPostgREST:
    def test_non_finite_bmi_is_a_write_failure(self, identity, sink):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=[])

        store = PostgRESTRecordStore(
            "https://project.example.co/rest/v1",
            api_key="anon-key",
            transport=httpx.MockTransport(handler),
        )
        vitals = VitalsChannel(identity, store, sink)

        assert _run(vitals.update({"height": 0})) is False
        assert isinstance(vitals.last_error, WriteFailed)
        assert sink.last.title == "Update failed"
        assert sink.last.severity == "error"
        assert vitals.cache == VitalsInfo()
        # Only the existence check reached the server
        assert [r.method for r in requests] == ["GET"]
