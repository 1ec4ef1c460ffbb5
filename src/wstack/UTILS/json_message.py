"""
Helpers for the JSON messages the engine streams back from build, pull and push.
"""
import json
from typing import Any, Dict, Optional


def decode_message(line: str) -> Optional[Dict[str, Any]]:
    """
    Decodes one JSON line. Returns None for anything that is not a JSON object.
    """
    try:
        message = json.loads(line)
    except ValueError:
        return None
    return message if isinstance(message, dict) else None


def error_message(message: Dict[str, Any]) -> Optional[str]:
    """
    Extracts the error carried by a message, from ``error`` or ``errorDetail.message``.
    """
    error = message.get("error")
    if isinstance(error, str) and error:
        return error
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    detail = message.get("errorDetail")
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    return None
