import json

import pytest
from unittest.mock import patch, MagicMock

from appwiz.settings import settings
from appwiz.store.draft_repo import (
    MemoryDraftStore,
    RedisDraftStore,
    _migrate_draft_data,
    draft_key,
    get_draft_store,
    wizard_for_key,
)
from appwiz.store.models import ApplicationDraft


def test_draft_key_layout():
    assert draft_key("client-1", "odraft") == "draft:client-1:odraft"


def test_migrate_maps_deposit_ordinals_to_step_ids():
    legacy = {
        "0": {"depositCategory": "regular", "depositType": "earn-fast"},
        "1": {"accountName": "Rahim"},
        "4": {"bankAccountName": "Rahim", "autoPaymentSOD": True, "autoPaymentDay": 15},
        "lastUpdated": "2024-05-01T10:00:00.000Z",
    }
    migrated = _migrate_draft_data(legacy, wizard="deposit")
    assert migrated["wizard"] == "deposit"
    assert migrated["steps"] == {
        "deposit_type": {"depositCategory": "regular", "depositType": "earn-fast"},
        "applicant_info": {"accountName": "Rahim"},
        "bank_details": {"bankAccountName": "Rahim", "autoPayment": True, "autoPaymentDay": 15},
    }
    assert migrated["stale"] == []
    assert migrated["lastUpdatedAtEpoch"] == 1714557600
    assert "lastUpdated" not in migrated
    assert legacy["4"]["autoPaymentSOD"] is True


def test_migrate_maps_loan_ordinals_skipping_the_removed_screen():
    legacy = {"1": {"loanType": "Personal"}, "3": {"requestedAmount": 500000}, "6": {"consent": True}}
    migrated = _migrate_draft_data(legacy, wizard="loan")
    assert migrated["steps"] == {
        "choose_product": {"loanType": "Personal"},
        "loan_details": {"requestedAmount": 500000},
        "declarations": {"consent": True},
    }


def test_migrate_keeps_named_keys_without_wizard_hint():
    migrated = _migrate_draft_data({"deposit_type": {"depositType": "earn-fast"}})
    assert migrated["steps"] == {"deposit_type": {"depositType": "earn-fast"}}


def test_wizard_for_key():
    assert wizard_for_key("draft:c:odraft") == "deposit"
    assert wizard_for_key("draft:c:loanDraft") == "loan"
    assert wizard_for_key("draft:c:other") == ""


def test_migrate_purges_undeclared_top_fields():
    data = {"wizard": "deposit", "steps": {"a": {}}, "stale": [], "legacy_junk": 1, "version": 2}
    migrated = _migrate_draft_data(data)
    assert set(migrated) == {"wizard", "steps", "stale"}


def test_migrate_repairs_wrong_container_types():
    migrated = _migrate_draft_data({"wizard": "loan", "steps": [], "stale": "x"})
    assert migrated["steps"] == {}
    assert migrated["stale"] == []


@patch("appwiz.store.draft_repo.log")
def test_migration_is_logged(mock_log):
    _migrate_draft_data({"deposit_type": {"depositType": "earn-fast"}})
    mock_log.assert_called_once()
    assert mock_log.call_args.kwargs["event"] == "draft_migrated"
    assert mock_log.call_args.kwargs["wrappedLegacy"] is True


@patch("appwiz.store.draft_repo.log")
def test_current_format_is_not_logged(mock_log):
    _migrate_draft_data({"wizard": "deposit", "steps": {}, "stale": [], "lastUpdatedAtEpoch": 1})
    mock_log.assert_not_called()


def test_redis_store_round_trip():
    mock_redis = MagicMock()
    store = RedisDraftStore(redis=mock_redis, ttl_sec=0)
    draft = ApplicationDraft(wizard="deposit", steps={"deposit_type": {"depositType": "earn-fast"}})

    store.set("draft:c:odraft", draft)
    key, body = mock_redis.set.call_args.args
    assert key == "draft:c:odraft"
    assert "ex" not in mock_redis.set.call_args.kwargs
    stored = json.loads(body)
    assert stored["steps"] == {"deposit_type": {"depositType": "earn-fast"}}
    assert isinstance(stored["lastUpdatedAtEpoch"], int)

    mock_redis.get.return_value = body
    loaded = store.get("draft:c:odraft")
    assert loaded.steps == draft.steps
    assert loaded.wizard == "deposit"


def test_redis_store_applies_ttl():
    mock_redis = MagicMock()
    RedisDraftStore(redis=mock_redis, ttl_sec=3600).set("k", ApplicationDraft(wizard="loan"))
    assert mock_redis.set.call_args.kwargs == {"ex": 3600}


def test_redis_store_missing_key():
    mock_redis = MagicMock()
    mock_redis.get.return_value = None
    assert RedisDraftStore(redis=mock_redis).get("k") is None


def test_redis_store_rejects_non_object():
    mock_redis = MagicMock()
    mock_redis.get.return_value = "[1, 2]"
    with pytest.raises(ValueError):
        RedisDraftStore(redis=mock_redis).get("k")


@patch("appwiz.store.draft_repo.get_redis")
def test_redis_store_loads_legacy_record(mock_get_redis):
    mock_redis = MagicMock()
    mock_get_redis.return_value = mock_redis
    mock_redis.get.return_value = json.dumps({"loan_details": {"tenor": 12}, "lastUpdated": "bad-date"})

    draft = RedisDraftStore().get("draft:c:loanDraft")
    assert draft.steps == {"loan_details": {"tenor": 12}}
    assert draft.lastUpdatedAtEpoch is None
    mock_redis.get.assert_called_with("draft:c:loanDraft")


def test_redis_store_clear():
    mock_redis = MagicMock()
    RedisDraftStore(redis=mock_redis).clear("k")
    mock_redis.delete.assert_called_once_with("k")


def test_memory_store_copies_in_and_out():
    store = MemoryDraftStore()
    draft = ApplicationDraft(wizard="deposit", steps={"a": {"x": 1}})
    store.set("k", draft)
    draft.steps["a"]["x"] = 2

    loaded = store.get("k")
    assert loaded.steps == {"a": {"x": 1}}
    loaded.steps["a"]["x"] = 3
    assert store.get("k").steps == {"a": {"x": 1}}

    store.clear("k")
    assert store.get("k") is None
    store.clear("k")


def test_store_factory(monkeypatch):
    monkeypatch.setattr(settings, "DRAFT_STORE", "memory")
    assert isinstance(get_draft_store(), MemoryDraftStore)
    assert get_draft_store() is get_draft_store()
    monkeypatch.setattr(settings, "DRAFT_STORE", "redis")
    assert isinstance(get_draft_store(), RedisDraftStore)


def test_merged_replaces_only_the_given_step():
    draft = ApplicationDraft(wizard="deposit", steps={"a": {"x": 1}, "b": {"y": 2}}, stale=["b"])
    out = draft.merged("b", {"y": 3})
    assert out.steps == {"a": {"x": 1}, "b": {"y": 3}}
    assert out.stale == []
    assert draft.steps["b"] == {"y": 2}
    assert draft.stale == ["b"]
