"""
PyStoreKit 範例：設定持久化中介軟體。

背景執行緒完成讀取後，結果透過 EventLoopScheduler 切換回單一的 dispatch 執行緒，
確保所有 dispatch 都由同一個執行緒序列化。
"""

import logging
import threading

from reactivex.scheduler import EventLoopScheduler, ThreadPoolScheduler

from pystorekit import apply_middleware, combine_reducers, create_store
from pystorekit.settings import (
    InMemorySettingsRepository,
    change_microphone_mode,
    change_num_rounds,
    load_all_settings,
    settings_loaded,
    settings_middleware,
    settings_reducer,
)

if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG, format="%(threadName)s %(name)s: %(message)s")

    repository = InMemorySettingsRepository({"num_rounds": 5, "category_id": 2})
    dispatch_thread = EventLoopScheduler()
    io_pool = ThreadPoolScheduler(max_workers=1)
    done = threading.Event()

    store = create_store(
        combine_reducers({"settings": settings_reducer}),
        enhancer=apply_middleware(settings_middleware(repository, scheduler=io_pool, result_scheduler=dispatch_thread)),
    )

    def on_change():
        settings = store.get_state()["settings"]
        print(f"settings: {settings}")
        if settings.num_rounds == 5:
            done.set()

    def start():
        store.subscribe(on_change)
        store.dispatch(load_all_settings())

    dispatch_thread.schedule(lambda *_: start())
    done.wait(5)

    def change():
        store.dispatch(change_num_rounds(12))
        store.dispatch(change_microphone_mode(True))

    changed = threading.Event()
    dispatch_thread.schedule(lambda *_: (change(), changed.set()))
    changed.wait(5)

    # 等待背景寫入完成
    io_pool.executor.shutdown(wait=True)
    dispatch_thread.dispose()
    print(f"{settings_loaded.type} handled, repository: {repository.snapshot()}")
