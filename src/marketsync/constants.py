from __future__ import annotations

# Base mainnet deployment (chain id 8453)
EXCHANGE_ADDRESS = "0x06fb7424ba65d587405b9c754bc40da9398b72f0"
SEAPORT_ADDRESS  = "0x0000000000000068f116a894984e2db1123eb395"
USDC_ADDRESS     = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
USDC_DECIMALS    = 6

# Block of the exchange contract deployment; scanning starts right after it.
DEPLOYMENT_BLOCK = 31_090_760

DEFAULT_RPC_URL = "https://mainnet.base.org"
NEYNAR_BASE_URL = "https://api.neynar.com/v2"

IPFS_GATEWAYS = (
    "https://gateway.pinata.cloud/ipfs/",
    "https://ipfs.io/ipfs/",
)

# Seaport ItemType enum values
ITEM_NATIVE  = 0
ITEM_ERC20   = 1
ITEM_ERC721  = 2
ITEM_ERC1155 = 3
NFT_ITEM_TYPES = (ITEM_ERC721, ITEM_ERC1155)

DEFAULT_LISTING_TTL_DAYS = 7
