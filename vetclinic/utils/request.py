"""
vetclinic/utils/request.py
──────────────────────────
Request body helpers shared by the JSON blueprints.
"""
from flask import request, abort


def json_body() -> dict:
    """
    The request's JSON object. A missing or unparsable body reads as {};
    JSON that isn't an object (a list, a number, a string) is a 400.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description='Request body must be a JSON object')
    return data


def text_field(data, key, default='') -> str:
    """Stripped string value of data[key]; anything that isn't a string reads as default."""
    value = data.get(key)
    return value.strip() if isinstance(value, str) else default
