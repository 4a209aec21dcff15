SPOT_PRICE_ORACLE_ABI = [
    {
        "name": "getRate",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "srcToken", "type": "address"},
            {"name": "dstToken", "type": "address"},
            {"name": "connector", "type": "address"},
            {"name": "thresholdFilter", "type": "uint256"},
        ],
        "outputs": [
            {"name": "rate", "type": "uint256"},
            {"name": "weight", "type": "uint256"},
        ],
    },
]
