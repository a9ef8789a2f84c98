"""ERC-4337 (EntryPoint v0.6) user operation model and hashing."""

from dataclasses import dataclass, replace

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

# Well-formed placeholder signature accepted by SimpleAccount during simulation
DUMMY_SIGNATURE = "0x" + "ff" * 15 + "f0" + "00" * 15 + "07" + "aa" * 32 + "1c"


def _bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


@dataclass
class UserOperation:
    """Packed-for-RPC user operation. Hex strings for byte fields, ints for quantities."""
    sender: str
    nonce: int
    init_code: str = "0x"
    call_data: str = "0x"
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster_and_data: str = "0x"
    signature: str = DUMMY_SIGNATURE

    def to_rpc(self) -> dict:
        """Serialize for eth_sendUserOperation / pm_sponsorUserOperation."""
        return {
            "sender": to_checksum_address(self.sender),
            "nonce": hex(self.nonce),
            "initCode": self.init_code,
            "callData": self.call_data,
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "paymasterAndData": self.paymaster_and_data,
            "signature": self.signature,
        }

    def with_sponsorship(self, sponsorship: dict) -> "UserOperation":
        """Apply a paymaster response (paymasterAndData plus optional gas fields)."""
        def quantity(key: str, current: int) -> int:
            value = sponsorship.get(key)
            if value is None:
                return current
            return int(value, 16) if isinstance(value, str) else int(value)

        return replace(
            self,
            paymaster_and_data=sponsorship.get("paymasterAndData") or self.paymaster_and_data,
            call_gas_limit=quantity("callGasLimit", self.call_gas_limit),
            verification_gas_limit=quantity("verificationGasLimit", self.verification_gas_limit),
            pre_verification_gas=quantity("preVerificationGas", self.pre_verification_gas),
        )

    def pack(self) -> bytes:
        """ABI-encode the fields covered by the signature."""
        return encode(
            [
                "address", "uint256", "bytes32", "bytes32", "uint256",
                "uint256", "uint256", "uint256", "uint256", "bytes32",
            ],
            [
                to_checksum_address(self.sender),
                self.nonce,
                keccak(_bytes(self.init_code)),
                keccak(_bytes(self.call_data)),
                self.call_gas_limit,
                self.verification_gas_limit,
                self.pre_verification_gas,
                self.max_fee_per_gas,
                self.max_priority_fee_per_gas,
                keccak(_bytes(self.paymaster_and_data)),
            ],
        )

    def hash(self, entry_point: str, chain_id: int) -> bytes:
        """userOpHash as computed by EntryPoint.getUserOpHash."""
        return keccak(
            encode(
                ["bytes32", "address", "uint256"],
                [keccak(self.pack()), to_checksum_address(entry_point), chain_id],
            )
        )
