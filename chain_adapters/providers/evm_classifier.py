"""
EVM Transaction Classifier - Maps calldata selectors to TransactionType.

Rules, first match wins:
1. No recipient but a created contract address -> CONTRACT_DEPLOY
2. Empty calldata -> TRANSFER when value moves, else CONTRACT_CALL
3. Known 4-byte selector -> its type
4. Unknown selector sent to a known DEX router -> SWAP
5. Anything else -> CONTRACT_CALL
"""

from typing import Optional

from chain_adapters.models import TransactionType


_SELECTOR_GROUPS: dict[TransactionType, tuple[str, ...]] = {
    TransactionType.TRANSFER: (
        "0xa9059cbb",  # transfer
        "0x23b872dd",  # transferFrom
        "0x42842e0e",  # safeTransferFrom(address,address,uint256)
        "0xb88d4fde",  # safeTransferFrom(address,address,uint256,bytes)
        "0xf242432a",  # ERC1155 safeTransferFrom
        "0x2eb2c2d6",  # ERC1155 safeBatchTransferFrom
    ),
    TransactionType.APPROVAL: (
        "0x095ea7b3",  # approve
        "0x39509351",  # increaseAllowance
        "0xa457c2d7",  # decreaseAllowance
        "0xa22cb465",  # setApprovalForAll
    ),
    TransactionType.SWAP: (
        "0x38ed1739",  # swapExactTokensForTokens
        "0x8803dbee",  # swapTokensForExactTokens
        "0x7ff36ab5",  # swapExactETHForTokens
        "0x18cbafe5",  # swapExactTokensForETH
        "0xfb3bdb41",  # swapETHForExactTokens
        "0x5c11d795",
        "0x791ac947",
        "0xb6f9de95",
        "0xc04b8d59",  # V3 exactInput
        "0xdb3e2198",  # V3 exactOutputSingle
        "0x09b81346",  # V3 exactOutput
        "0x5023b4df",
        "0xac9650d8",  # multicall
    ),
    TransactionType.ADD_LIQUIDITY: (
        "0xe8e33700",  # addLiquidity
        "0xf305d719",  # addLiquidityETH
        "0x88316456",  # V3 mint position
        "0x219f5d17",  # V3 increaseLiquidity
    ),
    TransactionType.REMOVE_LIQUIDITY: (
        "0xbaa2abde",
        "0x02751cec",
        "0xaf2979eb",
        "0xded9382a",
        "0x5b0d5984",
        "0x0c49ccbe",  # V3 decreaseLiquidity
        "0xfc6f7865",  # V3 collect
    ),
    TransactionType.STAKE: (
        "0xa694fc3a",  # stake
        "0x7acb7757",
        "0xb6b55f25",  # deposit(uint256)
        "0xd0e30db0",  # deposit()
        "0x1249c58b",  # mint() on lending markets
        "0xa0712d68",
        "0x0e752702",
    ),
    TransactionType.UNSTAKE: (
        "0x2e1a7d4d",  # withdraw(uint256)
        "0x853828b6",
        "0xe9fad8ee",  # exit
        "0x3d18b912",  # getReward
        "0x852a12e3",
        "0xdb006a75",  # redeem
        "0xe9c714f2",
        "0x69328dec",
    ),
    TransactionType.BRIDGE: (
        "0x3805550f",
        "0x0f5287b0",
        "0x9a2ac6d5",
        "0xa44c80e3",
        "0xbede39b5",
    ),
    TransactionType.MINT: (
        "0x40c10f19",  # mint(address,uint256)
        "0x6a627842",  # mint(address)
    ),
    TransactionType.BURN: (
        "0x42966c68",  # burn(uint256)
        "0x79cc6790",  # burnFrom
        "0x9dc29fac",  # burn(address,uint256)
    ),
}

SELECTOR_TYPES: dict[str, TransactionType] = {
    selector: tx_type
    for tx_type, selectors in _SELECTOR_GROUPS.items()
    for selector in selectors
}

DEX_ROUTERS = frozenset({
    "0x7a250d5630b4cf539739df2c5dacb4c659f2488d",  # Uniswap V2
    "0xe592427a0aece92de3edee1f18e0157c05861564",  # Uniswap V3
    "0x68b3465833fb72a70ecdf485e0e4c7bd8665fc45",  # Uniswap V3 Router 2
    "0xd9e1ce17f2641f24ae83637ab66a2cca9c378b9f",  # SushiSwap
    "0x1b02da8cb0d097eb8d57a175b88c7d8b47997506",  # SushiSwap (L2)
    "0x10ed43c718714eb63d5aa57b78b54704e256024e",  # PancakeSwap V2
    "0x13f4ea83d0bd40e75c8222255bc855a974568dd4",  # PancakeSwap V3
    "0xa5e0829caced8ffdd4de3c43696c57f7d7a678ff",  # QuickSwap
    "0x60ae616a2155ee3d9a68541ba4544862310933d4",  # Trader Joe
})


def classify_transaction(
    to_address: Optional[str],
    input_data: Optional[str],
    value: str = "0",
    contract_address: Optional[str] = None,
) -> TransactionType:
    if not to_address and contract_address:
        return TransactionType.CONTRACT_DEPLOY

    input_data = (input_data or "").lower()
    if input_data in ("", "0x"):
        return TransactionType.TRANSFER if value != "0" else TransactionType.CONTRACT_CALL

    tx_type = SELECTOR_TYPES.get(input_data[:10])
    if tx_type is not None:
        return tx_type

    if to_address and to_address.lower() in DEX_ROUTERS:
        return TransactionType.SWAP
    return TransactionType.CONTRACT_CALL
