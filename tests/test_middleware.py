"""
Tests for the middleware pipeline and the bundled middleware.
"""

from __future__ import annotations

import logging

import pytest

from pystorekit import (
    Action,
    ActionError,
    BaseMiddleware,
    DevToolsMiddleware,
    ErrorHandler,
    ErrorMiddleware,
    LoggerMiddleware,
    MiddlewareError,
    ThunkMiddleware,
    action_type,
    apply_middleware,
    create_action,
    create_middleware,
    create_reducer,
    create_store,
    global_error,
    on,
)

increment = create_action("INC")
double = create_action("DOUBLE")

counter_reducer = create_reducer(
    0,
    on(increment, lambda state, action: state + 1),
    on(double, lambda state, action: state * 2),
)


def recording_middleware(name, log):
    @create_middleware
    def middleware(api, next_dispatch, action):
        log.append((name, action_type(action)))
        return next_dispatch(action)
    return middleware


def recording_reducer(log):
    def reducer(state=None, action=None):
        log.append(("core", action_type(action)))
        return counter_reducer(state, action)
    return reducer


class TestApplyMiddleware:
    """Chain construction and ordering."""

    def test_first_middleware_is_outermost(self) -> None:
        """Dispatch visits m1, m2, m3 and then the core."""
        log = []
        store = create_store(
            recording_reducer(log),
            enhancer=apply_middleware(
                recording_middleware("m1", log),
                recording_middleware("m2", log),
                recording_middleware("m3", log),
            ),
        )
        log.clear()

        store.dispatch(increment())

        assert log == [("m1", "INC"), ("m2", "INC"), ("m3", "INC"), ("core", "INC")]

    def test_no_middleware_passes_straight_through(self) -> None:
        store = create_store(counter_reducer, enhancer=apply_middleware())

        store.dispatch(increment())

        assert store.get_state() == 1

    def test_enhanced_store_shares_state_and_listeners(self) -> None:
        store = create_store(counter_reducer, enhancer=apply_middleware(ThunkMiddleware))
        calls = []
        store.subscribe(lambda: calls.append(store.get_state()))

        store.dispatch(increment())

        assert calls == [1]
        assert store.state == 1

    def test_translation_forwards_different_action(self) -> None:
        @create_middleware
        def translate(api, next_dispatch, action):
            if action_type(action) == "INC_TWICE":
                next_dispatch(increment())
                return next_dispatch(increment())
            return next_dispatch(action)

        store = create_store(counter_reducer, enhancer=apply_middleware(translate))

        store.dispatch(Action("INC_TWICE"))

        assert store.get_state() == 2

    def test_swallowed_action_never_reaches_reducer(self) -> None:
        """Not calling next is a supported short-circuit."""
        log = []

        @create_middleware
        def swallow(api, next_dispatch, action):
            if action_type(action) == "SIDE_EFFECT_ONLY":
                return None
            return next_dispatch(action)

        store = create_store(recording_reducer(log), enhancer=apply_middleware(swallow))
        log.clear()

        store.dispatch(Action("SIDE_EFFECT_ONLY"))

        assert log == []

    def test_redispatch_goes_through_full_chain(self) -> None:
        """api.dispatch re-enters at the outermost middleware."""
        log = []

        @create_middleware
        def expander(api, next_dispatch, action):
            result = next_dispatch(action)
            if action_type(action) == "INC" and api.get_state() == 1:
                api.dispatch(double())
            return result

        store = create_store(
            recording_reducer(log),
            enhancer=apply_middleware(recording_middleware("outer", log), expander),
        )
        log.clear()

        store.dispatch(increment())

        assert log == [("outer", "INC"), ("core", "INC"), ("outer", "DOUBLE"), ("core", "DOUBLE")]
        assert store.get_state() == 2

    def test_dispatch_during_construction_fails(self) -> None:
        def eager(api):
            api.dispatch(increment())
            return lambda next_dispatch: next_dispatch

        with pytest.raises(MiddlewareError):
            create_store(counter_reducer, enhancer=apply_middleware(eager))

    def test_non_callable_middleware_rejected(self) -> None:
        with pytest.raises(MiddlewareError):
            apply_middleware(42)

    def test_factory_must_return_function(self) -> None:
        with pytest.raises(MiddlewareError):
            create_store(counter_reducer, enhancer=apply_middleware(lambda api: None))

    def test_core_still_rejects_non_data_actions(self) -> None:
        store = create_store(counter_reducer, enhancer=apply_middleware(recording_middleware("m", [])))

        with pytest.raises(ActionError):
            store.dispatch(object())


class TestHookMiddleware:
    """BaseMiddleware objects that only implement hooks."""

    def test_hooks_wrap_next(self) -> None:
        events = []

        class Recorder(BaseMiddleware):
            def on_next(self, action, prev_state):
                events.append(("next", action_type(action), prev_state))

            def on_complete(self, next_state, action):
                events.append(("complete", action_type(action), next_state))

        store = create_store(counter_reducer, enhancer=apply_middleware(Recorder))
        store.dispatch(increment())

        assert events == [("next", "INC", 0), ("complete", "INC", 1)]

    def test_on_error_called_and_error_propagates(self) -> None:
        errors = []

        class Recorder(BaseMiddleware):
            def on_error(self, error, action):
                errors.append((type(error), action_type(action)))

        def failing(state=None, action=None):
            if action_type(action) == "BOOM":
                raise ValueError("boom")
            return state

        store = create_store(failing, enhancer=apply_middleware(Recorder()))

        with pytest.raises(ValueError):
            store.dispatch(Action("BOOM"))

        assert errors == [(ValueError, "BOOM")]

    def test_teardown_called_with_store(self) -> None:
        torn_down = []

        class Closable(BaseMiddleware):
            def teardown(self):
                torn_down.append(True)

        store = create_store(counter_reducer, enhancer=apply_middleware(Closable))
        store.teardown()

        assert torn_down == [True]

    def test_complete_hook_runs_for_none_state(self) -> None:
        events = []

        class Recorder(BaseMiddleware):
            def on_complete(self, next_state, action):
                events.append((action_type(action), next_state))

        store = create_store(lambda state=None, action=None: None, enhancer=apply_middleware(Recorder))
        store.dispatch(Action("NOOP"))

        assert events == [("NOOP", None)]


class TestReusableEnhancer:
    """One apply_middleware enhancer can build several stores."""

    def test_stores_keep_separate_state(self) -> None:
        enhancer = apply_middleware(DevToolsMiddleware)

        first = create_store(counter_reducer, enhancer=enhancer)
        second = create_store(counter_reducer, enhancer=enhancer)

        first.dispatch(increment())

        assert first.get_state() == 1
        assert second.get_state() == 0

    def test_class_history_not_shared(self) -> None:
        created = []

        class Tracked(DevToolsMiddleware):
            def __init__(self):
                super().__init__()
                created.append(self)

        enhancer = apply_middleware(Tracked)
        first = create_store(counter_reducer, enhancer=enhancer)
        second = create_store(counter_reducer, enhancer=enhancer)

        first.dispatch(increment())
        second.dispatch(double())

        assert len(created) == 2
        assert created[0] is not created[1]
        assert created[0].get_history() == [(0, increment(), 1)]
        assert created[1].get_history() == [(0, double(), 0)]

    def test_shared_instance_torn_down_after_last_store(self) -> None:
        torn_down = []

        class Closable(BaseMiddleware):
            def teardown(self):
                torn_down.append(True)

        enhancer = apply_middleware(Closable())
        first = create_store(counter_reducer, enhancer=enhancer)
        second = create_store(counter_reducer, enhancer=enhancer)

        first.teardown()
        assert torn_down == []

        second.teardown()
        assert torn_down == [True]


class TestLoggerMiddleware:
    def test_logs_before_and_after(self, caplog) -> None:
        store = create_store(counter_reducer, enhancer=apply_middleware(LoggerMiddleware(level=logging.INFO)))

        with caplog.at_level(logging.INFO, logger="pystorekit.middleware"):
            store.dispatch(increment())

        messages = [record.getMessage() for record in caplog.records]
        assert "dispatching INC" in messages
        assert "state before INC: 0" in messages
        assert "state after INC: 1" in messages


class TestThunkMiddleware:
    def test_thunk_receives_dispatch_and_get_state(self) -> None:
        store = create_store(counter_reducer, enhancer=apply_middleware(ThunkMiddleware))

        def thunk(dispatch, get_state):
            dispatch(increment())
            dispatch(increment())
            return get_state()

        assert store.dispatch(thunk) == 2
        assert store.get_state() == 2


class TestErrorMiddleware:
    def test_dispatches_global_error_and_reraises(self) -> None:
        seen = []

        def reducer(state=None, action=None):
            tag = action_type(action)
            seen.append(tag)
            if tag == "BOOM":
                raise RuntimeError("boom")
            return state

        handler = ErrorHandler(log_to_console=False)
        reported = []
        handler.register_handler(reported.append)
        store = create_store(reducer, enhancer=apply_middleware(ErrorMiddleware(handler)))

        with pytest.raises(RuntimeError):
            store.dispatch(Action("BOOM"))

        assert seen[-1] == global_error.type
        assert reported[0].message == "boom"

    def test_failing_error_action_does_not_recurse(self) -> None:
        def reducer(state=None, action=None):
            if action_type(action) != "@@pystorekit/INIT":
                raise RuntimeError("always")
            return state

        store = create_store(
            reducer,
            enhancer=apply_middleware(ErrorMiddleware(ErrorHandler(log_to_console=False))),
        )

        with pytest.raises(RuntimeError):
            store.dispatch(Action("ANY"))


class TestDevToolsMiddleware:
    def test_records_history(self) -> None:
        devtools = DevToolsMiddleware()
        store = create_store(counter_reducer, enhancer=apply_middleware(devtools))

        store.dispatch(increment())
        store.dispatch(double())

        assert devtools.get_history() == [(0, increment(), 1), (1, double(), 2)]
        assert devtools.state_at(0) == 1
