"""ERC20 Transfer event decoding.

Transfer(address indexed from, address indexed to, uint256 value)
- topics[0]: event signature
- topics[1]: from address (indexed, left-padded to 32 bytes)
- topics[2]: to address (indexed, left-padded to 32 bytes)
- data: value (uint256, 32 bytes big-endian)
"""

import re
from dataclasses import dataclass
from typing import Optional

from .chain import ReceiptLog

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_SIGNATURE = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

_WORD_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_ADDRESS_PADDING = "0" * 24


@dataclass(frozen=True)
class TransferEvent:
    """A decoded Transfer log. Addresses are lowercase, 0x-prefixed."""

    from_address: str
    to_address: str
    raw_value: int


def normalize_address(address: Optional[str]) -> str:
    """Normalize an address to lowercase with 0x prefix.

    32-byte padded values (as found in log topics) are cut down to the
    trailing 20 bytes.
    """
    if not address:
        return ""
    address = address.lower()
    if not address.startswith("0x"):
        address = "0x" + address
    if len(address) == 66:
        address = "0x" + address[-40:]
    return address


def _topic_to_address(topic: str) -> Optional[str]:
    if not _WORD_RE.fullmatch(topic):
        return None
    body = topic[2:].lower()
    # A real address topic has 12 zero bytes of padding
    if not body.startswith(_ADDRESS_PADDING):
        return None
    return "0x" + body[24:]


def decode_transfer_log(log: ReceiptLog) -> Optional[TransferEvent]:
    """Decode a log as a Transfer event.

    Returns None for anything that is not a well-formed Transfer; callers
    skip such logs. Decoding is pure and independent of other logs.
    """
    if len(log.topics) != 3:
        return None
    if log.topics[0].lower() != TRANSFER_EVENT_SIGNATURE:
        return None

    from_address = _topic_to_address(log.topics[1])
    to_address = _topic_to_address(log.topics[2])
    if from_address is None or to_address is None:
        return None

    if not _WORD_RE.fullmatch(log.data):
        return None

    return TransferEvent(
        from_address=from_address,
        to_address=to_address,
        raw_value=int(log.data, 16),
    )
