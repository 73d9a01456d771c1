"""ABI helpers for the on-chain asset ledger.

We only ever touch the underlying asset through a tiny ERC-20 subset,
so the ABI fragment is embedded here instead of loading a compiled bundle.
"""

from functools import lru_cache

from eth_typing import HexAddress
from web3 import Web3
from web3.contract import Contract


#: Ethereum 0x0000000000000000000000000000000000000000 address
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _uint256_function(name: str, inputs: list[tuple[str, str]], output: str, mutability: str) -> dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": arg_name, "type": arg_type} for arg_name, arg_type in inputs],
        "outputs": [{"name": "", "type": output}],
    }


#: ERC-20 functions the vault needs from its underlying asset
ERC20_ABI = [
    _uint256_function("balanceOf", [("account", "address")], "uint256", "view"),
    _uint256_function("allowance", [("owner", "address"), ("spender", "address")], "uint256", "view"),
    _uint256_function("decimals", [], "uint8", "view"),
    _uint256_function("transfer", [("to", "address"), ("amount", "uint256")], "bool", "nonpayable"),
    _uint256_function("transferFrom", [("from", "address"), ("to", "address"), ("amount", "uint256")], "bool", "nonpayable"),
]


@lru_cache(maxsize=512)
def get_erc20_contract(web3: Web3, address: HexAddress | str) -> Contract:
    """Get a Contract proxy object for an ERC-20 token deployed at a specific address.

    :param web3:
        Web3 instance

    :param address:
        Ethereum address of the token

    :return:
        `web3.contract.Contract` proxy bound to :py:data:`ERC20_ABI`
    """
    assert isinstance(web3, Web3), f"Got {type(web3)} instead of Web3"
    assert address, "get_erc20_contract() address was None"
    return web3.eth.contract(address=Web3.to_checksum_address(address), abi=ERC20_ABI)
