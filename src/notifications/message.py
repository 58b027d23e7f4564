from __future__ import annotations

import json
from typing import Any

ANDROID_CONFIG = {
    "priority": "high",
    "notification": {
        "icon": "ic_notification",
        "color": "#2196F3",
        "sound": "default",
        "channel_id": "default",
    },
}

APNS_CONFIG = {
    "headers": {"apns-priority": "10"},
    "payload": {"aps": {"sound": "default", "badge": 1}},
}


def _stringify(value: Any) -> str:
    # FCM rejects non-string data values; the rendering follows JavaScript String().
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None:
        return json.dumps(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else _stringify(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)


def build_message(title: str, body: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {
        "notification": {"title": title, "body": body},
        "android": ANDROID_CONFIG,
        "apns": APNS_CONFIG,
    }
    if data is not None:
        message["data"] = {str(key): _stringify(value) for key, value in data.items()}
    return message


def for_token(message: dict[str, Any], token: str) -> dict[str, Any]:
    return {"message": {**message, "token": token}}


def for_topic(message: dict[str, Any], topic: str) -> dict[str, Any]:
    return {"message": {**message, "topic": topic}}
