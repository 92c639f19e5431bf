"""
Store enhancer 組合模組。

Enhancer 包裹的是「建立 Store 的函數」本身，而不只是 dispatch，
因此可以用來安裝中介軟體、加入儀表化或時間旅行等 Store 層級的功能。
"""
from functools import reduce
from typing import Any, Callable

from .errors import ConfigurationError
from .types import StoreCreator, StoreEnhancer


def compose(*funcs: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """
    由右至左組合單參數函數：compose(f, g, h)(x) == f(g(h(x)))。

    沒有函數時返回恆等函數。
    """
    if not funcs:
        return lambda arg: arg
    if len(funcs) == 1:
        return funcs[0]
    return reduce(lambda f, g: lambda arg: f(g(arg)), funcs)


def combine_enhancers(*enhancers: StoreEnhancer) -> StoreEnhancer:
    """
    將多個 store enhancer 組合成一個。

    順序由呼叫端決定：第一個 enhancer 在最外層，包裹（因此可以覆寫）
    之後列出的所有 enhancer；最後一個 enhancer 最靠近原始的 create_store。
    combine_enhancers(e1, e2) 等同 e1(e2(create_store))。
    沒有傳入任何 enhancer 時返回恆等 enhancer。

    Args:
        *enhancers: 要組合的 enhancer。

    Returns:
        組合後的 enhancer。

    Raises:
        ConfigurationError: 任一 enhancer 不可呼叫。
    """
    for index, enhancer in enumerate(enhancers):
        if not callable(enhancer):
            raise ConfigurationError(
                f"Enhancer at position {index} is not callable",
                component="combine_enhancers",
                config_key=str(index),
            )

    composed = compose(*enhancers)

    def combined(store_creator: StoreCreator) -> StoreCreator:
        return composed(store_creator)

    return combined
