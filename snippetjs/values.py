"""
SnippetJS - Value Model
Tagged runtime values, the per-call heap arena that owns arrays and objects,
and the JS coercion rules (ToNumber, ToString, truthiness, equality).

Arrays and objects are never stored inside a JSValue. A JSValue of type
ARRAY or OBJECT carries an integer handle into the Heap, so copying the value
copies the reference and aliases observe each other's mutations.
"""

import hashlib
import json
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum, auto
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .decimal_math import FixedDecimal, NAN, ZERO, ONE
from .errors import RangeError
from .meter import Meter


class ValueType(Enum):
    NUMBER    = auto()
    STRING    = auto()
    BOOLEAN   = auto()
    NULL      = auto()
    UNDEFINED = auto()
    ARRAY     = auto()
    OBJECT    = auto()


@dataclass(frozen=True)
class JSValue:
    type: ValueType
    payload: Any = None

    @classmethod
    def number(cls, value) -> "JSValue":
        return cls(ValueType.NUMBER, FixedDecimal.from_host(value))

    @classmethod
    def string(cls, value: str) -> "JSValue":
        return cls(ValueType.STRING, value)

    @classmethod
    def boolean(cls, value: bool) -> "JSValue":
        return JS_TRUE if value else JS_FALSE

    @property
    def is_container(self) -> bool:
        return self.type in (ValueType.ARRAY, ValueType.OBJECT)

    @property
    def is_nullish(self) -> bool:
        return self.type in (ValueType.NULL, ValueType.UNDEFINED)

    def __repr__(self):
        if self.type in (ValueType.NULL, ValueType.UNDEFINED):
            return f"JSValue({self.type.name})"
        return f"JSValue({self.type.name}, {self.payload!r})"


JS_UNDEFINED = JSValue(ValueType.UNDEFINED)
JS_NULL      = JSValue(ValueType.NULL)
JS_TRUE      = JSValue(ValueType.BOOLEAN, True)
JS_FALSE     = JSValue(ValueType.BOOLEAN, False)
JS_NAN       = JSValue(ValueType.NUMBER, NAN)


class _Undefined:
    """Host-side stand-in for JS undefined (None already means null)."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNDEFINED"

    def __bool__(self):
        return False


UNDEFINED = _Undefined()


def key_hash(key: str) -> int:
    return int.from_bytes(hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest(), "big")


@dataclass
class Property:
    key: str
    key_hash: int
    value: JSValue

    @classmethod
    def make(cls, key: str, value: JSValue) -> "Property":
        return cls(key, key_hash(key), value)


# ── Heap arena ────────────────────────────────────────────────────────────────

class Heap:
    """
    Append-only store for the arrays and objects of a single call.
    Every allocated slot (the container itself and each element or
    property) is charged to the meter.
    """

    def __init__(self, meter: Optional[Meter] = None):
        self._cells: List[list] = []
        self._meter = meter

    def __len__(self) -> int:
        return len(self._cells)

    def _charge(self, units: int, line: int = 0):
        if self._meter is not None and units:
            self._meter.charge(units, line)

    def _alloc(self, vtype: ValueType, cell: list, line: int) -> JSValue:
        self._charge(1 + len(cell), line)
        self._cells.append(cell)
        return JSValue(vtype, len(self._cells) - 1)

    def new_array(self, elements: Iterable[JSValue] = (), line: int = 0) -> JSValue:
        return self._alloc(ValueType.ARRAY, list(elements), line)

    def new_object(self, pairs: Iterable[Tuple[str, JSValue]] = (), line: int = 0) -> JSValue:
        """Duplicate keys keep the last value at the position of the first."""
        props: List[Property] = []
        index: Dict[str, int] = {}
        for key, value in pairs:
            if key in index:
                props[index[key]].value = value
            else:
                index[key] = len(props)
                props.append(Property.make(key, value))
        return self._alloc(ValueType.OBJECT, props, line)

    # ------------------------------------------------------------------ arrays

    def elements(self, array: JSValue) -> List[JSValue]:
        """The live element list of an array (mutations are visible)."""
        return self._cells[array.payload]

    def length(self, array: JSValue) -> int:
        return len(self._cells[array.payload])

    def get_index(self, array: JSValue, index: Optional[int], line: int = 0) -> JSValue:
        items = self._cells[array.payload]
        if index is None or not 0 <= index < len(items):
            raise RangeError("out of range", line)
        return items[index]

    def set_index(self, array: JSValue, index: Optional[int], value: JSValue, line: int = 0) -> None:
        items = self._cells[array.payload]
        if index is None or not 0 <= index < len(items):
            raise RangeError("out of range", line)
        items[index] = value

    def push(self, array: JSValue, values: List[JSValue], line: int = 0) -> int:
        self._charge(len(values), line)
        items = self._cells[array.payload]
        items.extend(values)
        return len(items)

    # ------------------------------------------------------------------ objects

    def properties(self, obj: JSValue) -> List[Property]:
        return self._cells[obj.payload]

    def _find(self, obj: JSValue, key: str) -> Optional[Property]:
        h = key_hash(key)
        for prop in self._cells[obj.payload]:
            if prop.key_hash == h and prop.key == key:
                return prop
        return None

    def get_property(self, obj: JSValue, key: str) -> JSValue:
        prop = self._find(obj, key)
        return prop.value if prop is not None else JS_UNDEFINED

    def set_property(self, obj: JSValue, key: str, value: JSValue, line: int = 0) -> None:
        prop = self._find(obj, key)
        if prop is not None:
            prop.value = value
            return
        self._charge(1, line)
        self._cells[obj.payload].append(Property.make(key, value))


# ── Coercions ─────────────────────────────────────────────────────────────────

def to_number(value: JSValue) -> FixedDecimal:
    t = value.type
    if t == ValueType.NUMBER:
        return value.payload
    if t == ValueType.BOOLEAN:
        return ONE if value.payload else ZERO
    if t == ValueType.NULL:
        return ZERO
    if t == ValueType.STRING:
        return FixedDecimal.parse(value.payload)
    return NAN


def to_js_string(value: JSValue, heap: Heap) -> str:
    return _to_string(value, heap, set())


def _to_string(value: JSValue, heap: Heap, seen: set) -> str:
    t = value.type
    if t == ValueType.STRING:
        return value.payload
    if t == ValueType.NUMBER:
        return value.payload.to_string()
    if t == ValueType.BOOLEAN:
        return "true" if value.payload else "false"
    if t == ValueType.NULL:
        return "null"
    if t == ValueType.UNDEFINED:
        return "undefined"
    if t == ValueType.OBJECT:
        return "[object Object]"
    # arrays join their elements; nullish elements and cycles become ""
    if value.payload in seen:
        return ""
    seen.add(value.payload)
    parts = [
        "" if item.is_nullish else _to_string(item, heap, seen)
        for item in heap.elements(value)
    ]
    seen.discard(value.payload)
    return ",".join(parts)


def truthy(value: JSValue) -> bool:
    t = value.type
    if t == ValueType.BOOLEAN:
        return value.payload
    if t == ValueType.NUMBER:
        return not (value.payload.nan or value.payload.is_zero)
    if t == ValueType.STRING:
        return value.payload != ""
    if t in (ValueType.NULL, ValueType.UNDEFINED):
        return False
    return True


def typeof(value: JSValue) -> str:
    t = value.type
    if t == ValueType.NUMBER:
        return "number"
    if t == ValueType.STRING:
        return "string"
    if t == ValueType.BOOLEAN:
        return "boolean"
    if t == ValueType.UNDEFINED:
        return "undefined"
    return "object"


def array_index(key: JSValue) -> Optional[int]:
    """Integer index for an array subscript, or None when it is not one."""
    if key.type not in (ValueType.NUMBER, ValueType.STRING, ValueType.BOOLEAN):
        return None
    n = to_number(key)
    if not n.is_integer:
        return None
    return n.truncate()


def property_key(key: JSValue, heap: Heap) -> str:
    return to_js_string(key, heap)


def strict_equals(a: JSValue, b: JSValue) -> bool:
    if a.type != b.type:
        return False
    if a.type == ValueType.NUMBER:
        return a.payload.compare(b.payload) == 0
    if a.is_nullish:
        return True
    return a.payload == b.payload


def loose_equals(a: JSValue, b: JSValue, heap: Heap) -> bool:
    if a.type == b.type:
        return strict_equals(a, b)
    if a.is_nullish or b.is_nullish:
        return a.is_nullish and b.is_nullish
    if a.type == ValueType.BOOLEAN:
        return loose_equals(JSValue(ValueType.NUMBER, to_number(a)), b, heap)
    if b.type == ValueType.BOOLEAN:
        return loose_equals(a, JSValue(ValueType.NUMBER, to_number(b)), heap)
    if a.is_container and b.is_container:
        return False
    if a.is_container:
        return loose_equals(JSValue.string(to_js_string(a, heap)), b, heap)
    if b.is_container:
        return loose_equals(a, JSValue.string(to_js_string(b, heap)), heap)
    # number vs string
    return to_number(a).compare(to_number(b)) == 0


# ── Display ───────────────────────────────────────────────────────────────────

def to_display(value: JSValue, heap: Heap) -> str:
    """
    Serialize a result. Top-level strings are returned verbatim; strings
    nested inside arrays or objects are JSON-quoted.
    """
    if value.type == ValueType.STRING:
        return value.payload
    return _display(value, heap, set())


def _display(value: JSValue, heap: Heap, seen: set) -> str:
    t = value.type
    if t == ValueType.STRING:
        return json.dumps(value.payload)
    if not value.is_container:
        return _to_string(value, heap, seen)
    if value.payload in seen:
        return "[Circular]"
    seen.add(value.payload)
    if t == ValueType.ARRAY:
        text = "[" + ",".join(_display(v, heap, seen) for v in heap.elements(value)) + "]"
    else:
        text = "{" + ",".join(
            f"{json.dumps(p.key)}:{_display(p.value, heap, seen)}"
            for p in heap.properties(value)
        ) + "}"
    seen.discard(value.payload)
    return text


# ── Host values ───────────────────────────────────────────────────────────────

def from_host(value: Any, heap: Heap) -> JSValue:
    """Import a plain Python value into the heap as a JSValue."""
    if isinstance(value, JSValue):
        return value
    if value is None:
        return JS_NULL
    if value is UNDEFINED:
        return JS_UNDEFINED
    if isinstance(value, bool):
        return JSValue.boolean(value)
    if isinstance(value, (FixedDecimal, int, float, Decimal)):
        return JSValue.number(value)
    if isinstance(value, str):
        return JSValue.string(value)
    if isinstance(value, (list, tuple)):
        return heap.new_array([from_host(v, heap) for v in value])
    if isinstance(value, dict):
        return heap.new_object((str(k), from_host(v, heap)) for k, v in value.items())
    raise TypeError(f"cannot import host value of type {type(value).__name__}")


def to_host(value: JSValue, heap: Heap, _memo: Optional[dict] = None) -> Any:
    """
    Export a JSValue as plain Python data. Aliased containers map to the same
    Python object, so cycles are preserved rather than expanded.
    """
    t = value.type
    if t == ValueType.NULL:
        return None
    if t == ValueType.UNDEFINED:
        return UNDEFINED
    if not value.is_container:
        return value.payload
    memo = {} if _memo is None else _memo
    if value.payload in memo:
        return memo[value.payload]
    if t == ValueType.ARRAY:
        out_list: list = []
        memo[value.payload] = out_list
        out_list.extend(to_host(v, heap, memo) for v in heap.elements(value))
        return out_list
    out_dict: dict = {}
    memo[value.payload] = out_dict
    for prop in heap.properties(value):
        out_dict[prop.key] = to_host(prop.value, heap, memo)
    return out_dict
