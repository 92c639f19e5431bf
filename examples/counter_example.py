"""
PyStoreKit 範例：計數器，展示 reducer、中介軟體、enhancer 組合與狀態選擇。
"""

import logging

from pystorekit import (
    DevToolsMiddleware,
    LoggerMiddleware,
    ThunkMiddleware,
    apply_middleware,
    combine_enhancers,
    combine_reducers,
    create_action,
    create_reducer,
    create_store,
    on,
)

# ============== 定義 Actions ==============
increment = create_action("INC")
decrement = create_action("DEC")
increment_by = create_action("INC_BY", lambda amount: amount)
reset = create_action("RESET", lambda value=0: value)

# ============== 定義 Reducer ==============
counter_reducer = create_reducer(
    0,
    on(increment, lambda state, action: state + 1),
    on(decrement, lambda state, action: state - 1),
    on(increment_by, lambda state, action: state + action.payload),
    on(reset, lambda state, action: action.payload),
)


# ============== 定義 Thunk ==============
def increment_if_odd():
    def thunk(dispatch, get_state):
        if get_state()["counter"] % 2:
            dispatch(increment())
    return thunk


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    devtools = DevToolsMiddleware()
    # 第一個 enhancer 在最外層：thunk 先於日誌與歷史記錄處理
    enhancer = combine_enhancers(
        apply_middleware(ThunkMiddleware),
        apply_middleware(LoggerMiddleware(level=logging.INFO), devtools),
    )
    store = create_store(combine_reducers({"counter": counter_reducer}), enhancer=enhancer)

    store.select(lambda state: state["counter"]).subscribe(
        on_next=lambda count: print(f"計數變化: {count}")
    )

    store.dispatch(increment())
    store.dispatch(increment_by(5))
    store.dispatch(decrement())
    store.dispatch(increment_if_odd())
    store.dispatch(reset(10))

    print("\n==== 歷史記錄 ====")
    for prev_state, action, next_state in devtools.get_history():
        print(f"{action.type}: {prev_state['counter']} -> {next_state['counter']}")
