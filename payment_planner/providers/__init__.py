from .base import (
    ChainReader,
    ContractCall,
    DepositIndexer,
    MulticallResult,
    PricingProvider,
    ProviderError,
    RpcError,
    is_method_unavailable_error,
)
from .across import AcrossProvider
from .indexer import HttpDepositIndexer
from .rpc import RpcChainReader, build_chain_readers

__all__ = [
    "ChainReader",
    "ContractCall",
    "DepositIndexer",
    "MulticallResult",
    "PricingProvider",
    "ProviderError",
    "RpcError",
    "is_method_unavailable_error",
    "AcrossProvider",
    "HttpDepositIndexer",
    "RpcChainReader",
    "build_chain_readers",
]
