"""Chain metadata, native currencies and well-known contract addresses."""

from typing import Any, Dict, Optional

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
MULTICALL3_ADDRESS = '0xcA11bde05977b3631167028862bE2a173976CA11'

CHAIN_METADATA: Dict[int, Dict[str, Any]] = {
    1: {
        'name': 'Ethereum',
        'native_symbol': 'ETH',
        'native_decimals': 18,
        'explorer': 'https://etherscan.io',
        'testnet': False,
    },
    10: {
        'name': 'Optimism',
        'native_symbol': 'ETH',
        'native_decimals': 18,
        'explorer': 'https://optimistic.etherscan.io',
        'testnet': False,
    },
    56: {
        'name': 'BNB Smart Chain',
        'native_symbol': 'BNB',
        'native_decimals': 18,
        'explorer': 'https://bscscan.com',
        'testnet': False,
    },
    137: {
        'name': 'Polygon',
        'native_symbol': 'MATIC',
        'native_decimals': 18,
        'explorer': 'https://polygonscan.com',
        'testnet': False,
    },
    8453: {
        'name': 'Base',
        'native_symbol': 'ETH',
        'native_decimals': 18,
        'explorer': 'https://basescan.org',
        'testnet': False,
    },
    42161: {
        'name': 'Arbitrum',
        'native_symbol': 'ETH',
        'native_decimals': 18,
        'explorer': 'https://arbiscan.io',
        'testnet': False,
    },
    11155111: {
        'name': 'Ethereum Sepolia',
        'native_symbol': 'ETH',
        'native_decimals': 18,
        'explorer': 'https://sepolia.etherscan.io',
        'testnet': True,
    },
    84532: {
        'name': 'Base Sepolia',
        'native_symbol': 'ETH',
        'native_decimals': 18,
        'explorer': 'https://sepolia.basescan.org',
        'testnet': True,
    },
    80002: {
        'name': 'Polygon Amoy',
        'native_symbol': 'MATIC',
        'native_decimals': 18,
        'explorer': 'https://amoy.polygonscan.com',
        'testnet': True,
    },
}

# Published spoke pool deployments; settings.spoke_pool_addresses overrides these.
SPOKE_POOL_ADDRESSES: Dict[int, str] = {
    1: '0x5c7BCd6E7De5423a257D81B442095A1a6ced35C5',
    10: '0x6f26Bf09B1C792e3228e5467807a900A503c0281',
    56: '0x4e8E101924eDE233C13e2D8622DC8aED2872d505',
    137: '0x9295ee1d8C5b022Be115A2AD3c30C72E34e7F096',
    8453: '0x09aea4b2242abC8bb4BB78D537A67a245A7bEC64',
    42161: '0xe35e9842fceaCA96570B734083f4a58e8F7C5f2A',
    11155111: '0x5ef6C01E11889d86803e0B23e3cB3F9E9d97B662',
    84532: '0x82B564983aE7274c86695917BBf8C99ECb6F0F8F',
    80002: '0xd08baaE74D6d2eAb1F3320B2E1a53eeb391ce8e5',
}


def _weth(chain_id: int, address: str) -> Dict[str, Dict[str, Any]]:
    native = CHAIN_METADATA[chain_id]
    return {
        'wrapped': {'address': address, 'symbol': 'WETH', 'decimals': 18, 'chain_id': chain_id},
        'native': {
            'address': ZERO_ADDRESS,
            'symbol': native['native_symbol'],
            'decimals': native['native_decimals'],
            'chain_id': chain_id,
        },
    }


# chain id -> wrapped symbol -> {wrapped, native} token dicts
DEFAULT_WRAPPED_TOKEN_MAP: Dict[int, Dict[str, Dict[str, Dict[str, Any]]]] = {
    1: {'WETH': _weth(1, '0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2')},
    10: {'WETH': _weth(10, '0x4200000000000000000000000000000000000006')},
    8453: {'WETH': _weth(8453, '0x4200000000000000000000000000000000000006')},
    42161: {'WETH': _weth(42161, '0x82aF49447D8a07e3bd95BD0d56f35241523fBab1')},
    11155111: {'WETH': _weth(11155111, '0xfFf9976782d46CC05630D1f6eBAb18b2324d6B14')},
    84532: {'WETH': _weth(84532, '0x4200000000000000000000000000000000000006')},
    80002: {
        'WMATIC': {
            'wrapped': {
                'address': '0x0000000000000000000000000000000000001010',
                'symbol': 'WMATIC',
                'decimals': 18,
                'chain_id': 80002,
            },
            'native': {'address': ZERO_ADDRESS, 'symbol': 'MATIC', 'decimals': 18, 'chain_id': 80002},
        },
    },
}


def is_native_address(address: Optional[str]) -> bool:
    """Return ``True`` for the zero address used as the native-currency marker."""

    return bool(address) and address.lower() == ZERO_ADDRESS


def token_key(chain_id: int, address: str) -> str:
    """Cache/index key for a token on a chain."""

    return f"{chain_id}:{address.lower()}"


def chain_name(chain_id: int) -> str:
    meta = CHAIN_METADATA.get(chain_id)
    return meta['name'] if meta else f"Chain {chain_id}"


__all__ = [
    'ZERO_ADDRESS',
    'MULTICALL3_ADDRESS',
    'CHAIN_METADATA',
    'SPOKE_POOL_ADDRESSES',
    'DEFAULT_WRAPPED_TOKEN_MAP',
    'is_native_address',
    'token_key',
    'chain_name',
]
