"""Well-known 4-byte function selectors.

Selectors are matched literally in bytecode, never hashed. Supporting a
new function is a matter of adding an entry to ``KNOWN_SELECTORS``.
"""

from __future__ import annotations

from owdit.core.types import FunctionSelector

KNOWN_SELECTORS: dict[str, str] = {
    # ERC20
    "0x70a08231": "balanceOf(address)",
    "0xa9059cbb": "transfer(address,uint256)",
    "0x23b872dd": "transferFrom(address,address,uint256)",
    "0x095ea7b3": "approve(address,uint256)",
    "0x18160ddd": "totalSupply()",
    "0xdd62ed3e": "allowance(address,address)",
    "0x06fdde03": "name()",
    "0x95d89b41": "symbol()",
    "0x313ce567": "decimals()",

    # ERC721
    "0x6352211e": "ownerOf(uint256)",
    "0x42842e0e": "safeTransferFrom(address,address,uint256)",
    "0xb88d4fde": "safeTransferFrom(address,address,uint256,bytes)",
    "0x081812fc": "getApproved(uint256)",
    "0xa22cb465": "setApprovalForAll(address,bool)",
    "0xe985e9c5": "isApprovedForAll(address,address)",
    "0x01ffc9a7": "supportsInterface(bytes4)",

    # ERC1155
    "0x00fdd58e": "balanceOf(address,uint256)",
    "0x4e1273f4": "balanceOfBatch(address[],uint256[])",
    "0xf242432a": "safeTransferFrom(address,address,uint256,uint256,bytes)",
    "0x2eb2c2d6": "safeBatchTransferFrom(address,address,uint256[],uint256[],bytes)",

    # Ownership
    "0x8da5cb5b": "owner()",
    "0x715018a6": "renounceOwnership()",
    "0xf2fde38b": "transferOwnership(address)",
    "0x79ba5097": "acceptOwnership()",

    # Roles
    "0x91d14854": "hasRole(bytes32,address)",
    "0x248a9ca3": "getRoleAdmin(bytes32)",
    "0x2f2ff15d": "grantRole(bytes32,address)",
    "0xd547741f": "revokeRole(bytes32,address)",
    "0x36568abe": "renounceRole(bytes32,address)",

    # Pausability
    "0x8456cb59": "pause()",
    "0x3f4ba83a": "unpause()",
    "0x5c975abb": "paused()",

    # Supply / treasury
    "0x40c10f19": "mint(address,uint256)",
    "0x42966c68": "burn(uint256)",
    "0x79cc6790": "burnFrom(address,uint256)",
    "0x3ccfd60b": "withdraw()",

    # Proxy administration
    "0x5c60da1b": "implementation()",
    "0x3659cfe6": "upgradeTo(address)",
    "0x4f1ef286": "upgradeToAndCall(address,bytes)",
    "0x8f283970": "changeAdmin(address)",
    "0xf851a440": "admin()",
}

# Selector groups used for archetype classification
ERC20_SELECTORS = frozenset({
    "0xa9059cbb", "0x70a08231", "0x23b872dd", "0x095ea7b3", "0x18160ddd",
})
ERC721_OWNER_OF = "0x6352211e"
ERC721_TRANSFER_SELECTORS = frozenset({
    "0x42842e0e", "0xb88d4fde", "0xa22cb465", "0x095ea7b3",
})
ERC1155_BALANCE_OF = "0x00fdd58e"
ERC1155_TRANSFER_SELECTORS = frozenset({"0xf242432a", "0x2eb2c2d6"})
OWNERSHIP_SELECTORS = frozenset({"0x8da5cb5b", "0xf2fde38b", "0x715018a6"})
ROLE_SELECTORS = frozenset({
    "0x91d14854", "0x248a9ca3", "0x2f2ff15d", "0xd547741f", "0x36568abe",
})
PROXY_ADMIN_SELECTORS = frozenset({
    "0x3659cfe6", "0x4f1ef286", "0x5c60da1b", "0x8f283970", "0xf851a440",
})
ACCESS_CONTROL_SELECTORS = OWNERSHIP_SELECTORS | ROLE_SELECTORS | {"0x79ba5097", "0x8f283970", "0xf851a440"}


def describe_selector(selector: str) -> FunctionSelector | None:
    """Build a FunctionSelector from the table, or None for unknown selectors."""
    signature = KNOWN_SELECTORS.get(selector)
    if signature is None:
        return None
    name, _, params = signature.partition("(")
    inputs = [p.strip() for p in params.rstrip(")").split(",") if p.strip()]
    return FunctionSelector(selector=selector, name=name, signature=signature, inputs=inputs)
