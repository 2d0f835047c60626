# Copyright 2024 The Pigweed Authors
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may not
# use this file except in compliance with the License. You may obtain a copy of
# the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations under
# the License.
"""Helpers for the canonical protobuf JSON mapping used by generated code."""

import base64
import binascii
import dataclasses
import datetime
import re
from collections.abc import Mapping
from typing import Any

from pw_protogen.runtime import well_known
from pw_protogen.runtime.oneof import Oneof

_RFC3339 = re.compile(
    r'^(?P<date>\d{4}-\d{2}-\d{2})[Tt ](?P<time>\d{2}:\d{2}:\d{2})'
    r'(?:\.(?P<fraction>\d{1,9}))?'
    r'(?P<offset>[Zz]|[+-]\d{2}:\d{2})$'
)
_EMPTY: Mapping[str, Any] = {}


def bytes_from_base64(data: str) -> bytes:
    """Decodes standard or URL-safe base64, with or without padding."""
    data = data.replace('-', '+').replace('_', '/')
    data += '=' * (-len(data) % 4)
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as err:
        raise ValueError(f'Invalid base64 value: {err}') from err


def base64_from_bytes(data: bytes | bytearray) -> str:
    return base64.b64encode(data).decode('ascii')


def _format_fraction(nanos: int) -> str:
    if nanos == 0:
        return ''
    if nanos % 1_000_000 == 0:
        return f'.{nanos // 1_000_000:03d}'
    if nanos % 1000 == 0:
        return f'.{nanos // 1000:06d}'
    return f'.{nanos:09d}'


def timestamp_to_json(timestamp: well_known.Timestamp) -> str:
    """Formats a Timestamp as an RFC 3339 UTC string."""
    seconds = well_known.from_timestamp(well_known.Timestamp(timestamp.seconds))
    return (
        seconds.strftime('%Y-%m-%dT%H:%M:%S')
        + _format_fraction(timestamp.nanos)
        + 'Z'
    )


def datetime_to_json(value: datetime.datetime) -> str:
    return timestamp_to_json(well_known.to_timestamp(value))


def _parse_rfc3339(value: str) -> well_known.Timestamp:
    match = _RFC3339.match(value)
    if match is None:
        raise ValueError(f'Invalid RFC 3339 timestamp: {value!r}')

    offset = match['offset']
    if offset in ('Z', 'z'):
        offset = '+00:00'
    parsed = datetime.datetime.fromisoformat(
        f'{match["date"]}T{match["time"]}{offset}'
    )
    nanos = int((match['fraction'] or '0').ljust(9, '0'))
    return well_known.Timestamp(
        well_known.to_timestamp(parsed).seconds, nanos
    )


def timestamp_from_json(obj: Any) -> well_known.Timestamp:
    """Reads a Timestamp from a string, epoch seconds, or a struct."""
    if isinstance(obj, well_known.Timestamp):
        return obj
    if isinstance(obj, datetime.datetime):
        return well_known.to_timestamp(obj)
    if isinstance(obj, str):
        return _parse_rfc3339(obj)
    if isinstance(obj, (int, float)) and not isinstance(obj, bool):
        seconds = int(obj // 1)
        return well_known.Timestamp(
            seconds, int(round((obj - seconds) * 1_000_000_000))
        )
    if isinstance(obj, Mapping):
        return well_known.Timestamp(
            int(obj.get('seconds') or 0), int(obj.get('nanos') or 0)
        )
    raise ValueError(f'Cannot convert {obj!r} to a timestamp')


def datetime_from_json(obj: Any) -> datetime.datetime:
    if isinstance(obj, datetime.datetime):
        if obj.tzinfo is None:
            return obj.replace(tzinfo=datetime.timezone.utc)
        return obj
    return well_known.from_timestamp(timestamp_from_json(obj))


def map_key_to_json(key: Any) -> str:
    """JSON object keys are strings; booleans use their JSON spelling."""
    if isinstance(key, bool):
        return 'true' if key else 'false'
    return str(key)


def partial_fields(obj: Any) -> Mapping[str, Any]:
    """Returns the fields of a from_partial() input.

    The input may be None, a mapping of attribute names to values, or an
    instance of a generated message.
    """
    if obj is None:
        return _EMPTY
    if isinstance(obj, Mapping):
        return obj
    if dataclasses.is_dataclass(obj):
        return {
            field.name: getattr(obj, field.name)
            for field in dataclasses.fields(obj)
        }
    raise TypeError(f'Cannot build a message from {type(obj).__name__}')


def partial_oneof(value: Any) -> Oneof | None:
    """Reads a oneof value given as a Oneof, a (case, value) pair, or a
    mapping with 'case' and 'value' keys."""
    if value is None:
        return None
    if isinstance(value, Oneof):
        return value
    if isinstance(value, Mapping):
        if value.get('case') is None:
            return None
        return Oneof(value['case'], value.get('value'))
    case, payload = value
    return Oneof(case, payload)
