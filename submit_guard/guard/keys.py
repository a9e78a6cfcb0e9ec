"""
Cache key derivation for repeat submit detection.

Keys are namespaced per strategy so the two key spaces never overlap:

    submit:param:<operation_id>:<sha256 of canonical arguments>
    submit:token:<sha256 of token | "-">:<resource_path>

All functions here are pure: no I/O, no clock, no shared state.
"""

import dataclasses
import datetime
import hashlib
import json
import uuid
from collections.abc import Mapping, Sequence, Set
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel

from submit_guard.exceptions import ConfigurationError
from submit_guard.guard.context import RequestContext
from submit_guard.guard.policy import Strategy

PARAM_NAMESPACE = "submit:param"
TOKEN_NAMESPACE = "submit:token"

# Stands in for a missing token; can never equal a hex digest
ANONYMOUS_TOKEN = "-"

# Payload for a container reached again while it is being walked
CYCLE_MARKER = "<cycle>"


def _type_name(value: Any) -> str:
    cls = type(value)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def _sort_key(item: Any) -> str:
    return json.dumps(item, separators=(",", ":"), ensure_ascii=False)


def _slot_values(value: Any) -> dict[str, Any]:
    values = {}
    for cls in type(value).__mro__:
        slots = cls.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for slot in slots:
            if slot in ("__dict__", "__weakref__") or slot in values:
                continue
            try:
                values[slot] = getattr(value, slot)
            except AttributeError:
                # unset slot
                continue
    return values


def canonicalize(value: Any, _active: set[int] | None = None) -> Any:
    """
    Convert a value into a JSON-compatible, type-tagged structure.

    Every node is a `[type_name, payload]` pair, so `1`, `1.0`, `True` and
    `"1"` all serialize differently. Sequences keep their order; mappings and
    sets are sorted so equal values serialize identically regardless of
    insertion order.

    A container or object reached again while it is still being walked
    becomes `[type_name, "<cycle>"]`. Objects with neither slots nor a
    `__dict__` are reduced to their type name, never to a `repr()` that
    may carry a memory address.

    Args:
        value: Any argument value

    Returns:
        Nested lists/strings/numbers suitable for `json.dumps`
    """
    name = _type_name(value)

    if value is None or isinstance(value, (bool, int, str)):
        return [name, value]
    if isinstance(value, float):
        # repr keeps nan/inf and full precision stable
        return [name, repr(value)]
    if isinstance(value, (bytes, bytearray, memoryview)):
        return [name, bytes(value).hex()]
    if isinstance(value, (Decimal, uuid.UUID)):
        return [name, str(value)]
    if isinstance(value, (datetime.date, datetime.time)):
        return [name, value.isoformat()]
    if isinstance(value, datetime.timedelta):
        return [name, value.total_seconds()]

    if _active is None:
        _active = set()
    marker = id(value)
    if marker in _active:
        return [name, CYCLE_MARKER]
    _active.add(marker)
    try:
        return [name, _walk(value, _active)]
    finally:
        _active.discard(marker)


def _walk(value: Any, active: set[int]) -> Any:
    if isinstance(value, Enum):
        return canonicalize(value.value, active)
    if isinstance(value, BaseModel):
        fields = {field: getattr(value, field) for field in type(value).model_fields}
        return canonicalize(fields, active)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {
            field.name: getattr(value, field.name)
            for field in dataclasses.fields(value)
        }
        return canonicalize(fields, active)
    if isinstance(value, Mapping):
        items = [
            [canonicalize(k, active), canonicalize(v, active)]
            for k, v in value.items()
        ]
        return sorted(items, key=lambda item: _sort_key(item[0]))
    if isinstance(value, Set):
        return sorted((canonicalize(v, active) for v in value), key=_sort_key)
    if isinstance(value, Sequence):
        return [canonicalize(v, active) for v in value]

    attributes = _slot_values(value)
    if hasattr(value, "__dict__"):
        attributes.update(vars(value))
    if attributes:
        return canonicalize(attributes, active)
    return None


def digest_parameters(parameters: Sequence[Any]) -> str:
    """
    Fingerprint an ordered argument list.

    Args:
        parameters: Argument values in call order

    Returns:
        SHA256 hex digest of the canonical serialization
    """
    content = json.dumps(
        [canonicalize(p) for p in parameters],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def by_parameters(operation_id: str, parameters: Sequence[Any]) -> str:
    """
    Key for "same operation, same arguments".

    Args:
        operation_id: Declaring scope + operation name
        parameters: Argument values in call order

    Returns:
        Cache key in the param namespace
    """
    return f"{PARAM_NAMESPACE}:{operation_id}:{digest_parameters(parameters)}"


def by_token(auth_token: str | None, resource_path: str) -> str:
    """
    Key for "same session, same endpoint", ignoring the payload.

    The token is hashed so raw credentials never sit in the cache. An
    absent token maps to ANONYMOUS_TOKEN, which differs from the hash of
    any real token including the empty string.

    Args:
        auth_token: Caller credential, or None
        resource_path: Logical endpoint path

    Returns:
        Cache key in the token namespace
    """
    if auth_token is None:
        token_part = ANONYMOUS_TOKEN
    else:
        token_part = hashlib.sha256(auth_token.encode("utf-8")).hexdigest()
    return f"{TOKEN_NAMESPACE}:{token_part}:{resource_path}"


def ensure_supported(strategy: Any) -> Strategy:
    """
    Check a strategy before it is attached to an operation.

    Raises:
        ConfigurationError: If the strategy is not recognized
    """
    try:
        return Strategy(strategy)
    except ValueError as exc:
        raise ConfigurationError(
            message=f"Unsupported repeat submit strategy: {strategy!r}",
            details={"supported": [s.value for s in Strategy]},
        ) from exc


def derive_key(strategy: Strategy, context: RequestContext) -> str:
    """
    Build the cache key for a request under the given strategy.

    Raises:
        ConfigurationError: If the strategy is not recognized
    """
    strategy = ensure_supported(strategy)
    if strategy is Strategy.BY_PARAMETERS:
        return by_parameters(context.operation_id, context.parameters)
    return by_token(context.auth_token, context.resource_path)
