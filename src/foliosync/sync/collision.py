"""
时间戳碰撞处理

远端按标的严格时间排序计算历史收益，同一标的不允许出现相同时间戳。

算法 (单次扫描):
    last = -inf
    ts > last  -> 保留
    ts <= last -> ts = last + 1s  (级联后移)

不同标的互不影响；纯现金流水 (无标的) 不处理。

分组键:
    CanonicalTransaction -> InstrumentRef
    ActivityDraft        -> 远端标的 (data_source, symbol)

对账时在标的解析之后按远端标的处理，不同的本地标识解析到同一远端标的时归为一组。
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

ONE_SECOND = timedelta(seconds=1)

T = TypeVar("T")


def instrument_key(item: Any) -> Optional[Hashable]:
    """默认分组键，无标的返回 None"""
    instrument = getattr(item, "instrument", None)
    if not instrument:
        return None
    return getattr(instrument, "identity", instrument)


def resolve_sequence(items: Iterable[T]) -> List[T]:
    """
    处理同一标的、已按时间排序的序列

    返回时间戳严格递增的新序列，相对顺序不变。
    """
    result: List[T] = []
    last = None

    for item in items:
        if last is None or item.timestamp > last:
            result.append(item)
            last = item.timestamp
            continue

        shifted = last + ONE_SECOND
        logger.debug(
            f"Timestamp collision for {item.source_key}: {item.timestamp.isoformat()} -> {shifted.isoformat()}"
        )
        result.append(item.with_timestamp(shifted))
        last = shifted

    return result


def resolve_collisions(
    items: Iterable[T],
    key: Callable[[Any], Optional[Hashable]] = instrument_key,
) -> List[T]:
    """
    按标的分组处理碰撞

    每组按时间稳定排序后处理；输出保持每项在输入中的位置。
    key 返回 None 的项 (纯现金) 原样保留。
    """
    items = list(items)
    groups: Dict[Hashable, List[int]] = {}

    for index, item in enumerate(items):
        group = key(item)
        if group is not None:
            groups.setdefault(group, []).append(index)

    result = list(items)

    for indices in groups.values():
        if len(indices) < 2:
            continue
        ordered = sorted(indices, key=lambda i: items[i].timestamp)
        resolved = resolve_sequence(items[i] for i in ordered)
        for index, item in zip(ordered, resolved):
            result[index] = item

    return result
