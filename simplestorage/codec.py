"""
Conversion between typed values and the strings kept in the document.

Every value in the store is a string. A *kind* says how to get from a Python
value to that string and back:

  - named kinds: "string", "int", "int8" .. "int64", "uint", "uint8" .. "uint64",
    "float32", "float64", "complex64", "complex128"
  - the builtins str / int / float / complex, mapped to string / int / float64 / complex128
  - anything else (a pydantic model, a dataclass, ``list[int]``, ``Any``...) is a
    structured kind, stored as JSON through a pydantic ``TypeAdapter``.
"""

from __future__ import annotations

import functools
import math
import numbers
import operator
import re
import struct
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from .errors import DecodeError, EncodingError

NOT_A_NUMBER = "not a number"
OUT_OF_RANGE = "out of range"
INVALID_JSON = "invalid JSON"

_INT_RE = re.compile(r"^[+-]?[0-9]+$")


@dataclass(frozen=True)
class Kind:
    name: str
    encode: Callable[[Any], str]
    decode: Callable[[str], Any]

    def __repr__(self) -> str:
        return f"Kind({self.name!r})"


# -------------------------------------------------------------------
# string
# -------------------------------------------------------------------

def _encode_string(value: Any) -> str:
    if not isinstance(value, str):
        raise EncodingError(f"expected str, got {type(value).__name__}", kind="string", value=value)
    return value


def _decode_string(raw: str) -> str:
    return raw


# -------------------------------------------------------------------
# integers
# -------------------------------------------------------------------

def _int_kind(name: str, lo: int, hi: int) -> Kind:
    def _encode(value: Any) -> str:
        if isinstance(value, bool):
            value = int(value)
        try:
            n = operator.index(value)
        except TypeError:
            raise EncodingError(f"expected an integer, got {type(value).__name__}", kind=name, value=value) from None
        if not lo <= n <= hi:
            raise EncodingError(f"{n} does not fit in {name}", kind=name, value=value)
        return str(n)

    def _decode(raw: str) -> int:
        s = raw.strip()
        if not _INT_RE.match(s):
            raise DecodeError(NOT_A_NUMBER)
        n = int(s)
        if not lo <= n <= hi:
            raise DecodeError(OUT_OF_RANGE)
        return n

    return Kind(name, _encode, _decode)


def _signed(bits: int) -> tuple[int, int]:
    return -(1 << (bits - 1)), (1 << (bits - 1)) - 1


def _unsigned(bits: int) -> tuple[int, int]:
    return 0, (1 << bits) - 1


# -------------------------------------------------------------------
# floats / complex
# -------------------------------------------------------------------

def _to_float32(x: float) -> float:
    # struct rejects finite values outside the single-precision range
    return struct.unpack("f", struct.pack("f", x))[0]


def _shortest32(x: float) -> float:
    """The shortest decimal that reads back as the same single-precision value."""
    if not math.isfinite(x):
        return x
    for digits in range(1, 10):
        candidate = float(f"{x:.{digits}g}")
        try:
            if _to_float32(candidate) == x:
                return candidate
        except OverflowError:
            continue
    return x


def _parse_float(raw: str) -> float:
    s = raw.strip()
    if not s or "_" in s:
        raise DecodeError(NOT_A_NUMBER)
    try:
        return float(s)
    except ValueError:
        raise DecodeError(NOT_A_NUMBER) from None


def _float_kind(name: str, single: bool) -> Kind:
    def _encode(value: Any) -> str:
        if not isinstance(value, numbers.Real):
            raise EncodingError(f"expected a real number, got {type(value).__name__}", kind=name, value=value)
        x = float(value)
        if single:
            try:
                x = _shortest32(_to_float32(x))
            except OverflowError:
                raise EncodingError(f"{x!r} does not fit in {name}", kind=name, value=value) from None
        return repr(x)

    def _decode(raw: str) -> float:
        x = _parse_float(raw)
        if single:
            try:
                x = _to_float32(x)
            except OverflowError:
                raise DecodeError(OUT_OF_RANGE) from None
        return x

    return Kind(name, _encode, _decode)


def _complex_kind(name: str, single: bool) -> Kind:
    def _narrow(z: complex) -> complex:
        return complex(_to_float32(z.real), _to_float32(z.imag)) if single else z

    def _canonical(z: complex) -> complex:
        return complex(_shortest32(z.real), _shortest32(z.imag)) if single else z

    def _encode(value: Any) -> str:
        if not isinstance(value, numbers.Complex):
            raise EncodingError(f"expected a complex number, got {type(value).__name__}", kind=name, value=value)
        try:
            z = _canonical(_narrow(complex(value)))
        except OverflowError:
            raise EncodingError(f"{value!r} does not fit in {name}", kind=name, value=value) from None
        return repr(z)

    def _decode(raw: str) -> complex:
        s = raw.strip()
        if not s or "_" in s:
            raise DecodeError(NOT_A_NUMBER)
        # accept the "1+2i" spelling as well as Python's "1+2j"
        if s.endswith("i)"):
            s = s[:-2] + "j)"
        elif s.endswith("i"):
            s = s[:-1] + "j"
        try:
            z = complex(s)
        except ValueError:
            raise DecodeError(NOT_A_NUMBER) from None
        try:
            return _narrow(z)
        except OverflowError:
            raise DecodeError(OUT_OF_RANGE) from None

    return Kind(name, _encode, _decode)


# -------------------------------------------------------------------
# structured (JSON via pydantic)
# -------------------------------------------------------------------

def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


@functools.lru_cache(maxsize=256)
def structured_kind(tp: Any) -> Kind:
    """Kind for an arbitrary type, stored as JSON."""
    adapter: TypeAdapter[Any] = TypeAdapter(tp)
    name = _type_name(tp)

    def _encode(value: Any) -> str:
        try:
            return adapter.dump_json(value).decode("utf-8")
        except (PydanticSerializationError, ValueError, TypeError) as e:
            raise EncodingError(f"cannot encode value as JSON: {e}", kind=name, value=value) from e

    def _decode(raw: str) -> Any:
        try:
            return adapter.validate_json(raw)
        except ValidationError:
            raise DecodeError(INVALID_JSON) from None

    return Kind(name, _encode, _decode)


STRING = Kind("string", _encode_string, _decode_string)
INT = _int_kind("int", *_signed(64))
UINT = _int_kind("uint", *_unsigned(64))
FLOAT32 = _float_kind("float32", single=True)
FLOAT64 = _float_kind("float64", single=False)
COMPLEX64 = _complex_kind("complex64", single=True)
COMPLEX128 = _complex_kind("complex128", single=False)
ANY = structured_kind(Any)

KINDS: dict[str, Kind] = {
    k.name: k
    for k in (
        STRING,
        INT,
        *(_int_kind(f"int{b}", *_signed(b)) for b in (8, 16, 32, 64)),
        UINT,
        *(_int_kind(f"uint{b}", *_unsigned(b)) for b in (8, 16, 32, 64)),
        FLOAT32,
        FLOAT64,
        COMPLEX64,
        COMPLEX128,
    )
}

_BUILTIN_KINDS: dict[type, Kind] = {
    str: STRING,
    int: INT,
    float: FLOAT64,
    complex: COMPLEX128,
}


def resolve_kind(kind: Any) -> Kind:
    if isinstance(kind, Kind):
        return kind
    if isinstance(kind, str):
        try:
            return KINDS[kind]
        except KeyError:
            raise ValueError(f"unknown kind: {kind!r}") from None
    if isinstance(kind, type) and kind in _BUILTIN_KINDS:
        return _BUILTIN_KINDS[kind]
    return structured_kind(kind)


def infer_kind(value: Any) -> Kind:
    # bool is an int subclass but reads back better as JSON true/false
    if isinstance(value, bool):
        return ANY
    for tp, kind in _BUILTIN_KINDS.items():
        if isinstance(value, tp):
            return kind
    return ANY


def encode(value: Any, kind: Any = None) -> str:
    """Encode ``value`` to its stored string form. Raises EncodingError."""
    k = infer_kind(value) if kind is None else resolve_kind(kind)
    return k.encode(value)


def decode(raw: str, kind: Any = str, *, key: str | None = None) -> Any:
    """Decode a stored string as ``kind``. Raises DecodeError."""
    k = resolve_kind(kind)
    try:
        return k.decode(raw)
    except DecodeError as e:
        raise DecodeError(e.reason, kind=k.name, key=key, raw=raw) from None
