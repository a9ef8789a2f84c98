"""ERC-20 call encoding and Transfer log decoding."""

from dataclasses import dataclass

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

TRANSFER_SELECTOR = function_signature_to_4byte_selector("transfer(address,uint256)")
BALANCE_OF_SELECTOR = function_signature_to_4byte_selector("balanceOf(address)")
TRANSFER_TOPIC = "0x" + keccak(text="Transfer(address,address,uint256)").hex()


@dataclass
class TransferLog:
    """Decoded Transfer event."""
    tx_hash: str
    sender: str
    recipient: str
    value: int
    block_number: int
    log_index: int


def encode_transfer(to: str, amount: int) -> str:
    """Call data for transfer(to, amount)."""
    args = encode(["address", "uint256"], [to_checksum_address(to), amount])
    return "0x" + (TRANSFER_SELECTOR + args).hex()


def encode_balance_of(owner: str) -> str:
    """Call data for balanceOf(owner)."""
    return "0x" + (BALANCE_OF_SELECTOR + encode(["address"], [to_checksum_address(owner)])).hex()


def decode_uint256(data: str) -> int:
    """Decode a single uint256 return value."""
    raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    if not raw:
        return 0
    return decode(["uint256"], raw)[0]


def address_topic(address: str) -> str:
    """Left-pad an address to a 32-byte indexed topic."""
    return "0x" + bytes.fromhex(to_checksum_address(address)[2:]).rjust(32, b"\0").hex()


def topic_to_address(topic: str) -> str:
    """Recover a checksum address from an indexed topic."""
    return to_checksum_address("0x" + topic[-40:])


def decode_transfer_log(log: dict) -> TransferLog:
    """Decode a raw eth_getLogs Transfer entry."""
    topics = log["topics"]
    return TransferLog(
        tx_hash=log["transactionHash"],
        sender=topic_to_address(topics[1]),
        recipient=topic_to_address(topics[2]),
        value=decode_uint256(log.get("data") or "0x"),
        block_number=int(log.get("blockNumber") or "0x0", 16),
        log_index=int(log.get("logIndex") or "0x0", 16),
    )
