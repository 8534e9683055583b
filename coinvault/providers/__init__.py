from coinvault.providers.base import ProviderClient
from coinvault.providers.coingecko import CoinGeckoClient
from coinvault.providers.coinranking import CoinrankingClient
from coinvault.providers.covalent import CovalentClient
from coinvault.providers.cryptocompare import CryptoCompareClient
from coinvault.providers.cryptonews import CryptoNewsClient
from coinvault.providers.defillama import DefiLlamaClient
from coinvault.providers.etherscan import EtherscanClient
from coinvault.providers.moralis import MoralisClient
from coinvault.providers.newsapi import NewsApiClient

PROVIDER_CLASSES = (
    CoinrankingClient,
    CoinGeckoClient,
    CryptoCompareClient,
    EtherscanClient,
    CovalentClient,
    MoralisClient,
    NewsApiClient,
    CryptoNewsClient,
    DefiLlamaClient,
)

__all__ = [
    "PROVIDER_CLASSES",
    "ProviderClient",
    "CoinGeckoClient",
    "CoinrankingClient",
    "CovalentClient",
    "CryptoCompareClient",
    "CryptoNewsClient",
    "DefiLlamaClient",
    "EtherscanClient",
    "MoralisClient",
    "NewsApiClient",
]
