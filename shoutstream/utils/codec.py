"""
URL-safe Base64 encoding of player data for shareable links
"""

import base64
import binascii
import json
from typing import Any, Dict, Union

from ..core.errors import InvalidPlayerData
from ..core.models import PlayerData


def encode_player_data(data: Union[PlayerData, Dict[str, Any]]) -> str:
    """Encode player data as unpadded URL-safe Base64 of its compact JSON"""
    if isinstance(data, PlayerData):
        data = data.to_dict()
    json_string = json.dumps(data, separators=(',', ':'), ensure_ascii=False)
    encoded = base64.urlsafe_b64encode(json_string.encode('utf-8')).decode('ascii')
    return encoded.rstrip('=')


def decode_player_data(encoded: str) -> PlayerData:
    """Decode a string produced by encode_player_data.

    Raises InvalidPlayerData when the input is not Base64, not JSON, or not
    an object carrying ``streamUrl``.
    """
    if not isinstance(encoded, str):
        raise InvalidPlayerData("Failed to decode player data: expected a string")

    # Accept standard alphabet too, then restore padding
    normalized = encoded.strip().replace('+', '-').replace('/', '_')
    normalized += '=' * (-len(normalized) % 4)

    try:
        raw = base64.b64decode(normalized, altchars=b'-_', validate=True)
        parsed = json.loads(raw.decode('utf-8'))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise InvalidPlayerData(f"Failed to decode player data: {e}") from e

    if not isinstance(parsed, dict) or 'streamUrl' not in parsed:
        raise InvalidPlayerData("Failed to decode player data: Invalid player data structure")
    if not isinstance(parsed['streamUrl'], str):
        raise InvalidPlayerData("Failed to decode player data: streamUrl must be a string")
    logo_url = parsed.get('logoUrl')
    if logo_url is not None and not isinstance(logo_url, str):
        raise InvalidPlayerData("Failed to decode player data: logoUrl must be a string")
    return PlayerData.from_dict(parsed)
