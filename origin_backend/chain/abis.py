"""Subsets of the Origin contract ABIs the backend calls."""
from typing import Any, Dict, List, Sequence, Tuple

Param = Tuple[str, str]


def _params(params: Sequence[Param]) -> List[Dict[str, str]]:
    return [{"type": abi_type, "name": name} for abi_type, name in params]


def _function(
    name: str,
    inputs: Sequence[Param] = (),
    outputs: Sequence[Param] = (),
    mutability: str = "nonpayable",
) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": _params(inputs),
        "outputs": _params(outputs),
        "stateMutability": mutability,
    }


TRANSFER_EVENT: Dict[str, Any] = {
    "type": "event",
    "name": "Transfer",
    "anonymous": False,
    "inputs": [
        {"type": "address", "name": "from", "indexed": True},
        {"type": "address", "name": "to", "indexed": True},
        {"type": "uint256", "name": "tokenId", "indexed": True},
    ],
}

ORIGIN_NFT_ABI: List[Dict[str, Any]] = [
    _function("mint", [("string", "referralCode")]),
    _function("addressToTokenId", [("address", "user")], [("uint256", "")], "view"),
    _function(
        "getUserBadges",
        [("address", "user")],
        [("uint256[]", ""), ("uint256[]", "")],
        "view",
    ),
    _function("getReferralCode", [("address", "user")], [("string", "")], "view"),
    _function(
        "setContracts",
        [("address", "repManager"), ("address", "badgeManager"), ("address", "marketplace")],
    ),
    TRANSFER_EVENT,
]

REP_MANAGER_ABI: List[Dict[str, Any]] = [
    _function("linkDiscord", [("address", "wallet"), ("string", "discordId")]),
    _function(
        "creditRep",
        [("address", "user"), ("uint256", "amount"), ("string", "reason")],
    ),
    _function("registerReferral", [("address", "referred"), ("address", "referrer")]),
]
