"""
Tests for the settings persistence middleware.
"""

from __future__ import annotations

import threading

import pytest
from pydantic import BaseModel, ValidationError
from reactivex.scheduler import ImmediateScheduler

from pystorekit import action_type, apply_middleware, combine_reducers, create_middleware, create_store
from pystorekit.settings import (
    InMemorySettingsRepository,
    SettingsRepository,
    UserSettings,
    change_category,
    change_microphone_mode,
    change_num_rounds,
    load_all_settings,
    settings_failed,
    settings_loaded,
    settings_middleware,
    settings_reducer,
)

WAIT = 5.0


class BlockingRepository(InMemorySettingsRepository):
    """Repository whose reads block until released."""

    def __init__(self, initial=None) -> None:
        super().__init__(initial)
        self.release = threading.Event()

    def get(self, field):
        self.release.wait(WAIT)
        return super().get(field)


class NotifyingRepository(InMemorySettingsRepository):
    def __init__(self) -> None:
        super().__init__()
        self.written = threading.Event()

    def set(self, field, value):
        super().set(field, value)
        self.written.set()


class FailingRepository:
    def get(self, field):
        raise IOError("disk unavailable")

    def set(self, field, value):
        raise IOError("disk unavailable")


class AsyncRepository:
    def __init__(self, values) -> None:
        self.values = values

    async def get(self, field):
        return self.values.get(field)

    async def set(self, field, value):
        self.values[field] = value


def build_store(repository, **kwargs):
    seen = []

    @create_middleware
    def recorder(api, next_dispatch, action):
        seen.append(action)
        return next_dispatch(action)

    middleware = settings_middleware(repository, **kwargs)
    store = create_store(
        combine_reducers({"settings": settings_reducer}),
        enhancer=apply_middleware(recorder, middleware),
    )
    return store, seen


class TestUserSettings:
    def test_defaults(self) -> None:
        settings = UserSettings()

        assert settings.num_rounds == 10
        assert settings.category_id == 0
        assert settings.microphone_mode is False

    def test_is_frozen(self) -> None:
        settings = UserSettings()

        with pytest.raises(ValidationError):
            settings.num_rounds = 3

    def test_in_memory_repository_satisfies_protocol(self) -> None:
        assert isinstance(InMemorySettingsRepository(), SettingsRepository)


class TestLoadAll:
    """LOAD_ALL reads in the background and dispatches LOADED."""

    def test_loaded_dispatched_without_blocking(self) -> None:
        repository = BlockingRepository({"num_rounds": 5})
        store, seen = build_store(repository)
        loaded = threading.Event()

        def listener():
            if store.get_state()["settings"].num_rounds == 5:
                loaded.set()

        store.subscribe(listener)

        store.dispatch(load_all_settings())

        # dispatch returned while the read is still blocked
        assert not loaded.is_set()
        repository.release.set()
        assert loaded.wait(WAIT)

        loaded_actions = [action for action in seen if action_type(action) == "LOADED"]
        assert len(loaded_actions) == 1
        assert loaded_actions[0].payload == UserSettings(num_rounds=5)
        store.teardown()

    def test_load_all_still_reaches_reducer_chain(self) -> None:
        store, seen = build_store(InMemorySettingsRepository(), scheduler=ImmediateScheduler())

        store.dispatch(load_all_settings())

        assert [action_type(action) for action in seen] == ["LOAD_ALL", "LOADED"]

    def test_missing_fields_fall_back_to_defaults(self) -> None:
        store, _ = build_store(InMemorySettingsRepository({"category_id": 3}), scheduler=ImmediateScheduler())

        store.dispatch(load_all_settings())

        assert store.get_state()["settings"] == UserSettings(category_id=3)

    def test_async_repository(self) -> None:
        repository = AsyncRepository({"num_rounds": 8, "microphone_mode": True})
        store, _ = build_store(repository, scheduler=ImmediateScheduler())

        store.dispatch(load_all_settings())

        assert store.get_state()["settings"] == UserSettings(num_rounds=8, microphone_mode=True)

    def test_result_scheduler_used_for_loaded(self) -> None:
        store, seen = build_store(
            InMemorySettingsRepository({"num_rounds": 2}),
            scheduler=ImmediateScheduler(),
            result_scheduler=ImmediateScheduler(),
        )

        store.dispatch(load_all_settings())

        assert seen[-1] == settings_loaded(UserSettings(num_rounds=2))


class TestChangeSettings:
    """Change actions update state immediately and persist in the background."""

    def test_state_updates_and_write_persists(self) -> None:
        repository = NotifyingRepository()
        store, _ = build_store(repository)

        store.dispatch(change_num_rounds(7))

        assert store.get_state()["settings"].num_rounds == 7
        assert repository.written.wait(WAIT)
        assert repository.get("num_rounds") == 7
        store.teardown()

    def test_each_field_maps_to_repository(self) -> None:
        repository = InMemorySettingsRepository()
        store, _ = build_store(repository, scheduler=ImmediateScheduler())

        store.dispatch(change_num_rounds(4))
        store.dispatch(change_category(9))
        store.dispatch(change_microphone_mode(True))

        assert repository.snapshot() == {"num_rounds": 4, "category_id": 9, "microphone_mode": True}
        assert store.get_state()["settings"] == UserSettings(num_rounds=4, category_id=9, microphone_mode=True)


class TestFailures:
    """Repository errors become settings_failed actions."""

    def test_read_failure_reported_as_action(self) -> None:
        store, seen = build_store(FailingRepository(), scheduler=ImmediateScheduler())

        store.dispatch(load_all_settings())

        failed = [action for action in seen if action_type(action) == settings_failed.type]
        assert len(failed) == 1
        assert failed[0].payload["operation"] == "read"
        assert "disk unavailable" in failed[0].payload["error"]
        assert store.get_state()["settings"] == UserSettings()

    def test_write_failure_does_not_break_dispatch(self) -> None:
        store, seen = build_store(FailingRepository(), scheduler=ImmediateScheduler())

        store.dispatch(change_category(2))

        assert store.get_state()["settings"].category_id == 2
        failed = [action for action in seen if action_type(action) == settings_failed.type]
        assert failed[0].payload["field"] == "category_id"


class ChangeRounds(BaseModel):
    type: str = "CHANGE_NUM_ROUNDS"
    payload: int


class TestActionForms:
    """Settings actions work in every accepted action form."""

    def test_mapping_change_action(self) -> None:
        repository = InMemorySettingsRepository()
        store, _ = build_store(repository, scheduler=ImmediateScheduler())

        store.dispatch({"type": "CHANGE_NUM_ROUNDS", "payload": 3})

        assert store.get_state()["settings"].num_rounds == 3
        assert repository.get("num_rounds") == 3

    def test_model_change_action(self) -> None:
        repository = InMemorySettingsRepository()
        store, _ = build_store(repository, scheduler=ImmediateScheduler())

        store.dispatch(ChangeRounds(payload=6))

        assert store.get_state()["settings"].num_rounds == 6
        assert repository.get("num_rounds") == 6

    def test_mapping_loaded_action(self) -> None:
        store, _ = build_store(InMemorySettingsRepository(), scheduler=ImmediateScheduler())

        store.dispatch({"type": "LOADED", "payload": {"category_id": 4}})

        assert store.get_state()["settings"] == UserSettings(category_id=4)


class TestSharedEnhancer:
    """Two stores built from one settings enhancer."""

    def test_teardown_of_one_store_keeps_other_persisting(self) -> None:
        repository = NotifyingRepository()
        enhancer = apply_middleware(settings_middleware(repository))
        reducer = combine_reducers({"settings": settings_reducer})
        first = create_store(reducer, enhancer=enhancer)
        second = create_store(reducer, enhancer=enhancer)

        first.teardown()
        second.dispatch(change_num_rounds(3))

        assert repository.written.wait(WAIT)
        assert repository.snapshot() == {"num_rounds": 3}
        second.teardown()
