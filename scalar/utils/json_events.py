"""JSON 事件流 — 深度优先、惰性地逐个产出值

每个 JSON 值产出一个 JsonEvent(path, type, value)，path 形如
``.CacheServers[1].Url``（根为空串）。生成器只在被迭代时向前解析，
调用方找到所需的值后停止迭代即可，不必解析整个文档；
文档后半段的语法错误只有在迭代到那里时才会抛出 JsonParseError。

用法:
    for ev in iter_json_events(text):
        if ev.type is JsonType.STRING and ev.path == ".repository.id":
            return ev.value
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from json.decoder import scanstring
from typing import Any

_WS = re.compile(r"[ \t\n\r]*")
_NUMBER = re.compile(r"-?(?:0|[1-9][0-9]*)(?:\.[0-9]+)?(?:[eE][-+]?[0-9]+)?")

# 容器最大嵌套层数；每层占用两个生成器帧，须远低于解释器递归上限
MAX_DEPTH = 128


class JsonType(str, Enum):
    NULL = "null"
    TRUE = "true"
    FALSE = "false"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class JsonEvent:
    """单个 JSON 值；容器类型（对象 / 数组）在其子元素之前产出，value 为 None"""

    path: str
    type: JsonType
    value: Any = None


class JsonParseError(ValueError):
    """JSON 语法错误"""

    def __init__(self, message: str, offset: int) -> None:
        super().__init__(f"{message} (offset {offset})")
        self.offset = offset


class _EventParser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def _peek(self) -> str:
        self.pos = _WS.match(self.text, self.pos).end()  # type: ignore[union-attr]
        return self.text[self.pos:self.pos + 1]

    def _error(self, message: str) -> JsonParseError:
        return JsonParseError(message, self.pos)

    def _string(self) -> str:
        # 调用前 _peek() 已确认当前字符为 '"'
        try:
            value, self.pos = scanstring(self.text, self.pos + 1)
        except json.JSONDecodeError as e:
            raise JsonParseError(e.msg, e.pos) from e
        return value

    def document(self) -> Iterator[JsonEvent]:
        yield from self._value("", 0)
        if self._peek():
            raise self._error("trailing data after JSON value")

    def _value(self, path: str, depth: int) -> Iterator[JsonEvent]:
        ch = self._peek()
        if ch and ch in "{[" and depth >= MAX_DEPTH:
            raise self._error(f"nesting too deep (more than {MAX_DEPTH} levels)")
        if ch == "{":
            yield from self._object(path, depth + 1)
        elif ch == "[":
            yield from self._array(path, depth + 1)
        elif ch == '"':
            yield JsonEvent(path, JsonType.STRING, self._string())
        elif not ch:
            raise self._error("unexpected end of JSON input")
        else:
            yield self._literal(path)

    def _literal(self, path: str) -> JsonEvent:
        for word, jtype, value in (
            ("true", JsonType.TRUE, True),
            ("false", JsonType.FALSE, False),
            ("null", JsonType.NULL, None),
        ):
            if self.text.startswith(word, self.pos):
                self.pos += len(word)
                return JsonEvent(path, jtype, value)
        m = _NUMBER.match(self.text, self.pos)
        if not m:
            raise self._error("unexpected character")
        self.pos = m.end()
        return JsonEvent(path, JsonType.NUMBER, json.loads(m.group()))

    def _object(self, path: str, depth: int) -> Iterator[JsonEvent]:
        self.pos += 1
        yield JsonEvent(path, JsonType.OBJECT)
        if self._peek() == "}":
            self.pos += 1
            return
        while True:
            if self._peek() != '"':
                raise self._error("expected object key")
            key = self._string()
            if self._peek() != ":":
                raise self._error("expected ':'")
            self.pos += 1
            yield from self._value(f"{path}.{key}", depth)
            ch = self._peek()
            self.pos += 1
            if ch == ",":
                continue
            if ch == "}":
                return
            self.pos -= 1
            raise self._error("expected ',' or '}'")

    def _array(self, path: str, depth: int) -> Iterator[JsonEvent]:
        self.pos += 1
        yield JsonEvent(path, JsonType.ARRAY)
        if self._peek() == "]":
            self.pos += 1
            return
        index = 0
        while True:
            yield from self._value(f"{path}[{index}]", depth)
            index += 1
            ch = self._peek()
            self.pos += 1
            if ch == ",":
                continue
            if ch == "]":
                return
            self.pos -= 1
            raise self._error("expected ',' or ']'")


def iter_json_events(text: str) -> Iterator[JsonEvent]:
    """按文档顺序惰性产出 JSON 事件"""
    return _EventParser(text).document()


def find_first(
    events: Iterable[JsonEvent], predicate: Callable[[JsonEvent], bool],
) -> JsonEvent | None:
    """返回第一个满足条件的事件，之后不再继续解析"""
    for ev in events:
        if predicate(ev):
            return ev
    return None
