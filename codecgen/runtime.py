"""Generic encoder and decoder used by generated codec modules.

Values are converted between Python objects and the plain data model shared by
JSON and YAML (dicts, lists, strings, numbers, booleans, None). Dataclass
fields are named after their tag (see codecgen.tags), so a generated wire
record and the document it produces always agree on key names.

Types can take over their own encoding by defining ``marshal_<fmt>(self)`` and
a classmethod ``unmarshal_<fmt>(cls, value)``; generated modules bind exactly
these methods onto records.
"""

from __future__ import annotations

import base64
import binascii
import collections.abc
import dataclasses
import datetime
import enum
import functools
import json
import types
import typing
from typing import Any, Dict, FrozenSet, Tuple

import yaml

from . import tags
from .config import METADATA_KEY
from .errors import DecodeError

_NONE_TYPE = type(None)
_SEQUENCE_ORIGINS = (list, tuple, set, frozenset, collections.abc.Sequence, collections.abc.Set)
_MAPPING_ORIGINS = (dict, collections.abc.Mapping)


def _tag(f: dataclasses.Field) -> str:
    return f.metadata.get(METADATA_KEY, "")


@functools.lru_cache(maxsize=None)
def _hints(cls: type) -> Dict[str, Any]:
    return typing.get_type_hints(cls)


def _strip_optional(tp: Any) -> Tuple[Any, bool]:
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        args = typing.get_args(tp)
        rest = [a for a in args if a is not _NONE_TYPE]
        if len(rest) == 1 and len(args) == 2:
            return rest[0], True
    return tp, False


def _is_empty(value: Any, hint: Any) -> bool:
    if value is None:
        return True
    if _strip_optional(hint)[1]:
        # Nullable fields are only omitted when unset.
        return False
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def marshal(value: Any, fmt: str) -> Any:
    """Convert value into plain data for the given format."""
    if value is None:
        return None
    if not isinstance(value, type):
        hook = getattr(value, f"marshal_{fmt}", None)
        if hook is not None:
            return hook()
        if dataclasses.is_dataclass(value):
            return _marshal_dataclass(value, fmt)
    if isinstance(value, enum.Enum):
        return marshal(value.value, fmt)
    if isinstance(value, bool):
        return bool(value)
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return float(value)
    if isinstance(value, str):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, collections.abc.Mapping):
        return {marshal(k, fmt): marshal(v, fmt) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [marshal(v, fmt) for v in value]
    raise TypeError(f"cannot marshal {type(value).__name__} as {fmt}")


def _marshal_dataclass(obj: Any, fmt: str) -> Dict[str, Any]:
    hints = _hints(type(obj))
    out: Dict[str, Any] = {}
    for f in dataclasses.fields(obj):
        if f.name.startswith("_"):
            continue
        tag = _tag(f)
        if tags.is_skipped(tag, fmt):
            continue
        value = getattr(obj, f.name)
        if "omitempty" in tags.name_options(tag, fmt) and _is_empty(value, hints.get(f.name)):
            continue
        out[tags.encoded_name(tag, fmt, f.name)] = marshal(value, fmt)
    return out


def _mismatch(value: Any, tp: Any) -> DecodeError:
    name = getattr(tp, "__name__", repr(tp))
    return DecodeError(f"cannot decode {type(value).__name__} into {name}")


def unmarshal(tp: Any, value: Any, fmt: str) -> Any:
    """Build a value of type tp from plain data of the given format."""
    if value is None:
        return None
    tp, _ = _strip_optional(tp)
    if tp is Any or tp is object:
        return value
    supertype = getattr(tp, "__supertype__", None)
    if supertype is not None:
        # typing.NewType is the identity at runtime.
        return unmarshal(supertype, value, fmt)
    origin = typing.get_origin(tp)
    if origin is not None:
        return _unmarshal_generic(tp, origin, value, fmt)
    if not isinstance(tp, type):
        raise DecodeError(f"unsupported type {tp!r}")

    hook = getattr(tp, f"unmarshal_{fmt}", None)
    if hook is not None:
        return hook(value)
    if dataclasses.is_dataclass(tp):
        return _unmarshal_dataclass(tp, value, fmt)
    if issubclass(tp, enum.Enum):
        try:
            return tp(value)
        except ValueError as err:
            raise DecodeError(f"{value!r} is not a valid {tp.__name__}") from err
    if issubclass(tp, bool):
        if not isinstance(value, bool):
            raise _mismatch(value, tp)
        return tp(value)
    if issubclass(tp, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise _mismatch(value, tp)
        return tp(value)
    if issubclass(tp, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _mismatch(value, tp)
        return tp(value)
    if issubclass(tp, str):
        if not isinstance(value, str):
            raise _mismatch(value, tp)
        return tp(value)
    if issubclass(tp, bytes):
        if isinstance(value, bytes):
            return tp(value)
        if not isinstance(value, str):
            raise _mismatch(value, tp)
        try:
            return tp(base64.b64decode(value, validate=True))
        except binascii.Error as err:
            raise DecodeError(f"invalid base64 data for {tp.__name__}") from err
    if issubclass(tp, (datetime.date, datetime.time)):
        if isinstance(value, tp):
            return value
        if not isinstance(value, str):
            raise _mismatch(value, tp)
        try:
            return tp.fromisoformat(value)
        except ValueError as err:
            raise DecodeError(f"invalid {tp.__name__} {value!r}") from err
    if isinstance(value, tp):
        return value
    raise _mismatch(value, tp)


def _unmarshal_generic(tp: Any, origin: Any, value: Any, fmt: str) -> Any:
    args = typing.get_args(tp)
    if origin in _SEQUENCE_ORIGINS:
        if not isinstance(value, (list, tuple)):
            raise _mismatch(value, origin)
        elem = args[0] if args else Any
        items = [unmarshal(elem, v, fmt) for v in value]
        if origin in (tuple, set, frozenset):
            return origin(items)
        if origin is collections.abc.Set:
            return set(items)
        return items
    if origin in _MAPPING_ORIGINS:
        if not isinstance(value, dict):
            raise _mismatch(value, origin)
        key_type, value_type = args if args else (Any, Any)
        return {_unmarshal_key(key_type, k, fmt): unmarshal(value_type, v, fmt) for k, v in value.items()}
    raise DecodeError(f"unsupported type {tp!r}")


def _unmarshal_key(tp: Any, key: Any, fmt: str) -> Any:
    # JSON object keys are always strings.
    if isinstance(key, str) and isinstance(tp, type) and issubclass(tp, int) and not issubclass(tp, bool):
        try:
            return tp(key)
        except ValueError as err:
            raise DecodeError(f"invalid {tp.__name__} key {key!r}") from err
    return unmarshal(tp, key, fmt)


def _decode_fields(cls: type, value: Any, fmt: str) -> Dict[str, Any]:
    """Constructor arguments for cls, one per tagged key present in value."""
    if not isinstance(value, dict):
        raise _mismatch(value, cls)
    hints = _hints(cls)
    kwargs: Dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if not f.init or f.name.startswith("_"):
            continue
        tag = _tag(f)
        if tags.is_skipped(tag, fmt):
            continue
        key = tags.encoded_name(tag, fmt, f.name)
        if key in value:
            kwargs[f.name] = unmarshal(hints[f.name], value[key], fmt)
    return kwargs


def _construct(cls: type, kwargs: Dict[str, Any]) -> Any:
    try:
        return cls(**kwargs)
    except TypeError as err:
        raise DecodeError(f"cannot build {cls.__name__}: {err}") from err


def _unmarshal_dataclass(cls: type, value: Any, fmt: str) -> Any:
    return _construct(cls, _decode_fields(cls, value, fmt))


def unmarshal_wire(cls: type, value: Any, fmt: str) -> Tuple[Any, FrozenSet[str]]:
    """Decode a wire record and report which of its fields had a key in value.

    A null document decodes like an empty one.
    """
    if value is None:
        value = {}
    kwargs = _decode_fields(cls, value, fmt)
    return _construct(cls, kwargs), frozenset(kwargs)


def dumps_json(value: Any, **kwargs: Any) -> str:
    return json.dumps(marshal(value, "json"), **kwargs)


def loads_json(cls: Any, text: str) -> Any:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as err:
        raise DecodeError(f"invalid JSON: {err}") from err
    return unmarshal(cls, data, "json")


def dumps_yaml(value: Any) -> str:
    return yaml.safe_dump(marshal(value, "yaml"), sort_keys=False)


def loads_yaml(cls: Any, text: str) -> Any:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise DecodeError(f"invalid YAML: {err}") from err
    return unmarshal(cls, data, "yaml")
