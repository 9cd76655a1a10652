import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

from chalicelib.utils.exceptions import ValidationException

# Epoch values above this are treated as milliseconds
EPOCH_MILLISECONDS_THRESHOLD = 10 ** 11


def replace_dict_key(item, orig_key, new_key):
    if orig_key in item:
        if new_key not in item:
            item[new_key] = item[orig_key]
        del item[orig_key]


def substitute_keys(dict_to_process: dict, base_keys: dict, opt_dict=None):
    if opt_dict is None:
        opt_dict = {}
    all_keys = {**base_keys, **opt_dict}
    for key, val in all_keys.items():
        if val:
            replace_dict_key(dict_to_process, key, val)
        elif key in dict_to_process.keys():
            dict_to_process.pop(key, None)


def parse_raw_body(chalice_request):
    request_raw_body = chalice_request.raw_body
    if request_raw_body:
        try:
            body = json.loads(request_raw_body)
        except json.JSONDecodeError:
            raise ValidationException('Request body is not a valid JSON')
        if not isinstance(body, dict):
            raise ValidationException('Request body must be a JSON object')
        return fix_values_from_ui(item=body)
    else:
        return {}


def fix_values_from_ui(item):
    """
    Remove keys with empty or None values and transform float to Decimal
    """
    if item.get('_values_from_ui_strategy') == 'delete_empty':
        list_to_cleanup = ['', None]
    else:
        list_to_cleanup = [None]
    item = cleanup_dict(item, list_to_cleanup)
    item.pop('_values_from_ui_strategy', None)
    result = json.dumps(item)
    return json.loads(result, parse_float=Decimal)


def cleanup_dict(item: dict, list_of_values: list):
    """ Remove None fields in dict with. Supports one nesting.  """

    def sub_clean(sub_item):
        return {
            key: value
            for key, value in sub_item.items()
            if value not in list_of_values
        }

    clean = {}
    for k, v in item.items():
        if isinstance(v, dict):
            nested = sub_clean(v)
            if len(nested.keys()) > 0:
                clean[k] = nested
        elif v not in list_of_values:
            clean[k] = v
    return clean


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def is_number(value) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def to_decimal(value, places: str = '1.00') -> Optional[Decimal]:
    """
    Converts int/float/Decimal/numeric string to a quantized Decimal
    :return:
    Decimal or None if the value is not a number
    """
    if isinstance(value, bool) or value is None:
        return None
    try:
        result = Decimal(str(value)).quantize(Decimal(places))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def first_present(record: Dict, keys: Iterable[str], default: Any = None) -> Any:
    for key in keys:
        if record.get(key) not in (None, ''):
            return record[key]
    return default


def _from_epoch(seconds, nanoseconds=0, detect_milliseconds: bool = False) -> Optional[datetime]:
    try:
        if detect_milliseconds and seconds > EPOCH_MILLISECONDS_THRESHOLD:
            seconds = seconds / 1000
        return datetime.fromtimestamp(float(seconds) + float(nanoseconds) / 10 ** 9, tz=timezone.utc)
    except (OverflowError, OSError, ValueError, InvalidOperation):
        # out of the platform range, nan/inf
        return None


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parses timestamps stored by different clients of the document store:
    {'_seconds': .., '_nanoseconds': ..}, {'seconds': .., 'nanoseconds': ..},
    epoch seconds/milliseconds, ISO-8601 strings (with or without 'Z') and datetime objects.
    Naive values are considered UTC.
    :return:
    timezone aware datetime or None if the value can't be parsed
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, dict):
        seconds = first_present(value, ('_seconds', 'seconds'))
        if not is_number(seconds):
            return None
        nanoseconds = first_present(value, ('_nanoseconds', 'nanoseconds'), 0)
        nanoseconds = nanoseconds if is_number(nanoseconds) else 0
        return _from_epoch(seconds, nanoseconds)
    if is_number(value):
        return _from_epoch(value, detect_milliseconds=True)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def normalize_timestamp(value) -> Optional[str]:
    parsed = parse_timestamp(value)
    return parsed.astimezone(timezone.utc).isoformat(timespec="seconds") if parsed else None
