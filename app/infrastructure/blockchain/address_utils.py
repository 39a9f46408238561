"""
Address normalization shared by the chain client and the repositories.
"""

from eth_utils import is_address, to_checksum_address

from app.core.exceptions import InvalidWalletAddressError


def normalize_address(address: str) -> str:
    """Return the lowercase form used as the storage key. Raises on malformed input."""
    if not isinstance(address, str) or not is_address(address):
        raise InvalidWalletAddressError(str(address))
    return address.lower()


def checksum_address(address: str) -> str:
    """Return the EIP-55 form expected by web3 calls."""
    if not isinstance(address, str) or not is_address(address):
        raise InvalidWalletAddressError(str(address))
    return to_checksum_address(address)
