CHAIN_ID_BASE = 8453
# Local Anvil fork of Base.
CHAIN_ID_ANVIL = 31337

PRE_EIP_1559_CHAIN_IDS: set[int] = set()
