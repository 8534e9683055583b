# coinvault/routers_market.py
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query

from coinvault.deps import touch_session
from coinvault.services import ServiceContainer

router = APIRouter(tags=["market"])


def _csv(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


# ---------------------- Market (coinranking / coingecko / cryptocompare) ----------------------

@router.get("/market/coins")
async def market_coins(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    time_period: str = Query("24h"),
    services: ServiceContainer = Depends(touch_session),
):
    return await services.provider("coinranking").get_coins(limit=limit, offset=offset, time_period=time_period)


@router.get("/market/coins/{uuid}")
async def market_coin(uuid: str, time_period: str = "24h",
                      services: ServiceContainer = Depends(touch_session)):
    return await services.provider("coinranking").get_coin(uuid, time_period=time_period)


@router.get("/market/coins/{uuid}/history")
async def market_coin_history(uuid: str, time_period: str = "24h",
                              services: ServiceContainer = Depends(touch_session)):
    return await services.provider("coinranking").get_coin_history(uuid, time_period=time_period)


@router.get("/market/stats")
async def market_stats(services: ServiceContainer = Depends(touch_session)):
    return await services.provider("coinranking").get_global_stats()


@router.get("/market/exchanges")
async def market_exchanges(limit: int = Query(50, ge=1, le=100), offset: int = Query(0, ge=0),
                           services: ServiceContainer = Depends(touch_session)):
    return await services.provider("coinranking").get_exchanges(limit=limit, offset=offset)


@router.get("/market/markets")
async def market_markets(limit: int = Query(50, ge=1, le=100), offset: int = Query(0, ge=0),
                         services: ServiceContainer = Depends(touch_session)):
    return await services.provider("coinranking").get_markets(limit=limit, offset=offset)


@router.get("/market/search")
async def market_search(q: str = Query(..., min_length=1), limit: int = Query(10, ge=1, le=50),
                        services: ServiceContainer = Depends(touch_session)):
    return await services.provider("coinranking").search_coins(q, limit=limit)


@router.get("/market/prices")
async def market_prices(
    ids: str = Query(..., description="Comma-separated CoinGecko ids, e.g. bitcoin,ethereum"),
    vs: str = Query("usd", description="Comma-separated quote currencies"),
    services: ServiceContainer = Depends(touch_session),
):
    return await services.provider("coingecko").get_prices(_csv(ids), _csv(vs))


@router.get("/market/trending")
async def market_trending(services: ServiceContainer = Depends(touch_session)):
    return await services.provider("coingecko").get_trending_coins()


@router.get("/market/listings")
async def market_listings(currency: str = "usd", page: int = Query(1, ge=1), per_page: int = Query(100, ge=1, le=250),
                          services: ServiceContainer = Depends(touch_session)):
    return await services.provider("coingecko").get_coin_markets(currency, page=page, per_page=per_page)


@router.get("/market/details/{coin_id}")
async def market_details(coin_id: str, services: ServiceContainer = Depends(touch_session)):
    return await services.provider("coingecko").get_coin_details(coin_id)


@router.get("/market/quotes")
async def market_quotes(
    fsyms: str = Query(..., description="Comma-separated symbols, e.g. BTC,ETH"),
    tsyms: str = Query("USD"),
    services: ServiceContainer = Depends(touch_session),
):
    return await services.provider("cryptocompare").get_multiple_prices(_csv(fsyms.upper()), _csv(tsyms.upper()))


@router.get("/market/gas")
async def market_gas(services: ServiceContainer = Depends(touch_session)):
    return await services.provider("etherscan").get_gas_price()


@router.get("/market/history/{symbol}")
async def market_history(
    symbol: str,
    tsym: str = "USD",
    interval: Literal["daily", "hourly"] = "daily",
    limit: int = Query(30, ge=1, le=2000),
    services: ServiceContainer = Depends(touch_session),
):
    client = services.provider("cryptocompare")
    if interval == "hourly":
        return await client.get_historical_hourly(symbol.upper(), tsym=tsym, limit=limit)
    return await client.get_historical_daily(symbol.upper(), tsym=tsym, limit=limit)


@router.get("/market/signals/{symbol}")
async def market_signals(symbol: str, services: ServiceContainer = Depends(touch_session)):
    return await services.provider("cryptocompare").get_trading_signals(symbol.upper())


# ---------------------- News (newsapi / cryptonews) ----------------------

@router.get("/news/latest", tags=["news"])
async def news_latest(
    source: Literal["newsapi", "cryptonews"] = "newsapi",
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=50),
    services: ServiceContainer = Depends(touch_session),
):
    if source == "cryptonews":
        return await services.provider("cryptonews").get_latest_news(page=page, items=size)
    return await services.provider("newsapi").get_latest_news(page=page, page_size=size)


@router.get("/news/headlines", tags=["news"])
async def news_headlines(country: str = "us", size: int = Query(5, ge=1, le=50),
                         services: ServiceContainer = Depends(touch_session)):
    return await services.provider("newsapi").get_top_headlines(country=country, page_size=size)


@router.get("/news/search", tags=["news"])
async def news_search(q: str = Query(..., min_length=1), page: int = Query(1, ge=1),
                      size: int = Query(10, ge=1, le=50),
                      services: ServiceContainer = Depends(touch_session)):
    return await services.provider("newsapi").search_news(q, page=page, page_size=size)


@router.get("/news/coins", tags=["news"])
async def news_by_coin(tickers: str = Query(..., description="Comma-separated tickers, e.g. BTC,ETH"),
                       size: int = Query(10, ge=1, le=50),
                       services: ServiceContainer = Depends(touch_session)):
    return await services.provider("cryptonews").get_news_by_coin(_csv(tickers.upper()), items=size)


@router.get("/news/topics", tags=["news"])
async def news_by_topic(topics: str = Query(..., description="Comma-separated topics, e.g. NFT,DeFi"),
                        size: int = Query(10, ge=1, le=50),
                        services: ServiceContainer = Depends(touch_session)):
    return await services.provider("cryptonews").get_news_by_topic(_csv(topics), items=size)


@router.get("/news/trending", tags=["news"])
async def news_trending(size: int = Query(10, ge=1, le=50),
                        services: ServiceContainer = Depends(touch_session)):
    return await services.provider("cryptonews").get_trending_news(items=size)


# ---------------------- DeFi (defillama) ----------------------

@router.get("/defi/protocols", tags=["defi"])
async def defi_protocols(limit: int = Query(50, ge=1, le=500),
                         services: ServiceContainer = Depends(touch_session)):
    protocols = await services.provider("defillama").get_protocols()
    return protocols[:limit]


@router.get("/defi/protocols/{protocol}", tags=["defi"])
async def defi_protocol_tvl(protocol: str, services: ServiceContainer = Depends(touch_session)):
    return await services.provider("defillama").get_protocol_tvl(protocol)


@router.get("/defi/chains", tags=["defi"])
async def defi_chains(services: ServiceContainer = Depends(touch_session)):
    return await services.provider("defillama").get_chains_tvl()


@router.get("/defi/tvl", tags=["defi"])
async def defi_global_tvl(services: ServiceContainer = Depends(touch_session)):
    return await services.provider("defillama").get_global_tvl()


@router.get("/defi/yields", tags=["defi"])
async def defi_yields(limit: int = Query(100, ge=1, le=1000),
                      services: ServiceContainer = Depends(touch_session)):
    return await services.provider("defillama").get_yield_pools(limit=limit)


@router.get("/defi/stablecoins", tags=["defi"])
async def defi_stablecoins(services: ServiceContainer = Depends(touch_session)):
    return await services.provider("defillama").get_stablecoins()


# ---------------------- NFT collections (moralis) ----------------------

@router.get("/nft/{token_address}/stats", tags=["nft"])
async def nft_collection_stats(token_address: str, chain: str = "eth",
                               services: ServiceContainer = Depends(touch_session)):
    return await services.provider("moralis").get_collection_stats(token_address, chain=chain)


@router.get("/nft/{token_address}/{token_id}", tags=["nft"])
async def nft_metadata(token_address: str, token_id: str, chain: str = "eth",
                       services: ServiceContainer = Depends(touch_session)):
    return await services.provider("moralis").get_nft(token_address, token_id, chain=chain)
