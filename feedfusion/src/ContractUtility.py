"""ContractUtility: Web3 initialization and reference feed contract loading."""

import os

from web3 import Web3
from web3.contract import Contract

# Minimal AggregatorV3Interface ABI: only the calls the reference adapter makes.
AGGREGATOR_V3_ABI: list[dict] = [
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "latestRoundData",
        "outputs": [
            {"internalType": "uint80", "name": "roundId", "type": "uint80"},
            {"internalType": "int256", "name": "answer", "type": "int256"},
            {"internalType": "uint256", "name": "startedAt", "type": "uint256"},
            {"internalType": "uint256", "name": "updatedAt", "type": "uint256"},
            {"internalType": "uint80", "name": "answeredInRound", "type": "uint80"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]

DEFAULT_RPC_URL = "http://localhost:8545"


class ContractUtility:
    """Utility for Web3 connection and reference feed contracts.

    :ivar network: RPC URL.
    :ivar w3: Configured Web3 instance.
    """

    def __init__(self, rpc_url: str | None = None) -> None:
        """Initialize the contract utility.

        :param rpc_url: RPC endpoint. The RPC_URL env var is used when omitted.
        """
        self.network = rpc_url or os.environ.get("RPC_URL") or DEFAULT_RPC_URL
        self.w3 = Web3(Web3.HTTPProvider(self.network))

    def reference_feed(self, address: str) -> Contract:
        """Bind the AggregatorV3 ABI to a feed address.

        :param address: Feed contract address (any case).
        :returns: Contract instance.
        :raises ValueError: If the address is not a valid hex address.
        """
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address), abi=AGGREGATOR_V3_ABI
        )
