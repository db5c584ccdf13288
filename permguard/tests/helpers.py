"""Shared addresses, role ids and ABI encoding helpers for the test suite."""

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from permguard.core.models import to_role_id

OWNER = to_checksum_address("0x" + "0f" * 20)
ALICE = to_checksum_address("0x" + "a1" * 20)
BOB = to_checksum_address("0x" + "b0" * 20)
CAROL = to_checksum_address("0x" + "c4" * 20)
TOKEN = to_checksum_address("0x" + "7e" * 20)
VAULT = to_checksum_address("0x" + "5a" * 20)

ROLE_1 = to_role_id(1)
ROLE_2 = to_role_id(2)
ROLE_3 = to_role_id(3)

TRANSFER = "transfer(address,uint256)"
APPROVE = "approve(address,uint256)"


def selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


def calldata(signature: str, types, values) -> bytes:
    return selector(signature) + encode(types, values)


def word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def address_word(address: str) -> bytes:
    return bytes.fromhex(address[2:]).rjust(32, b"\x00")


def transfer(to: str, amount: int) -> bytes:
    return calldata(TRANSFER, ["address", "uint256"], [to, amount])
