"""
heatdash.universe
~~~~~~~~~~~~~~~~~
Static universes for the three heatmaps.

SP500 caps are approximate (billions USD) and only size tiles until a live
Finnhub profile cap has been fetched; the live daily change drives colour.
"""
from __future__ import annotations

from typing import Dict, List, Tuple

# (symbol, name, sector, approx market cap $B) - largest names per sector
_SP500_ROWS: List[Tuple[str, str, str, float]] = [
    ("AAPL",  "Apple",              "Technology",             3300),
    ("MSFT",  "Microsoft",          "Technology",             3000),
    ("NVDA",  "NVIDIA",             "Technology",             2800),
    ("AVGO",  "Broadcom",           "Technology",              900),
    ("ORCL",  "Oracle",             "Technology",              500),
    ("CRM",   "Salesforce",         "Technology",              280),
    ("AMD",   "AMD",                "Technology",              250),
    ("CSCO",  "Cisco",              "Technology",              220),
    ("ADBE",  "Adobe",              "Technology",              200),
    ("QCOM",  "Qualcomm",           "Technology",              170),
    ("GOOGL", "Alphabet",           "Communication Services", 2100),
    ("META",  "Meta Platforms",     "Communication Services", 1500),
    ("NFLX",  "Netflix",            "Communication Services",  350),
    ("TMUS",  "T-Mobile US",        "Communication Services",  260),
    ("DIS",   "Walt Disney",        "Communication Services",  195),
    ("AMZN",  "Amazon",             "Consumer Discretionary", 2200),
    ("TSLA",  "Tesla",              "Consumer Discretionary",  850),
    ("HD",    "Home Depot",         "Consumer Discretionary",  380),
    ("MCD",   "McDonald's",         "Consumer Discretionary",  215),
    ("BKNG",  "Booking Holdings",   "Consumer Discretionary",  160),
    ("WMT",   "Walmart",            "Consumer Staples",        730),
    ("COST",  "Costco",             "Consumer Staples",        380),
    ("PG",    "Procter & Gamble",   "Consumer Staples",        380),
    ("KO",    "Coca-Cola",          "Consumer Staples",        270),
    ("PEP",   "PepsiCo",            "Consumer Staples",        215),
    ("BRK-B", "Berkshire Hathaway", "Financials",              980),
    ("JPM",   "JPMorgan Chase",     "Financials",              700),
    ("V",     "Visa",               "Financials",              580),
    ("MA",    "Mastercard",         "Financials",              475),
    ("BAC",   "Bank of America",    "Financials",              330),
    ("WFC",   "Wells Fargo",        "Financials",              250),
    ("GS",    "Goldman Sachs",      "Financials",              185),
    ("LLY",   "Eli Lilly",          "Healthcare",              760),
    ("UNH",   "UnitedHealth",       "Healthcare",              490),
    ("JNJ",   "Johnson & Johnson",  "Healthcare",              380),
    ("ABBV",  "AbbVie",             "Healthcare",              330),
    ("MRK",   "Merck",              "Healthcare",              255),
    ("ABT",   "Abbott",             "Healthcare",              205),
    ("GE",    "GE Aerospace",       "Industrials",             205),
    ("CAT",   "Caterpillar",        "Industrials",             195),
    ("RTX",   "RTX",                "Industrials",             175),
    ("UNP",   "Union Pacific",      "Industrials",             145),
    ("HON",   "Honeywell",          "Industrials",             130),
    ("XOM",   "ExxonMobil",         "Energy",                  510),
    ("CVX",   "Chevron",            "Energy",                  280),
    ("COP",   "ConocoPhillips",     "Energy",                  135),
    ("LIN",   "Linde",              "Materials",               215),
    ("SHW",   "Sherwin-Williams",   "Materials",                85),
    ("PLD",   "Prologis",           "Real Estate",             105),
    ("AMT",   "American Tower",     "Real Estate",              90),
    ("NEE",   "NextEra Energy",     "Utilities",               145),
    ("SO",    "Southern Company",   "Utilities",                90),
]

SP500_META: Dict[str, Dict] = {
    sym: {"name": name, "sector": sector, "mkt_cap_b": cap}
    for sym, name, sector, cap in _SP500_ROWS
}
SP500_SYMBOLS: List[str] = [row[0] for row in _SP500_ROWS]

# SPDR sector ETFs -> sector name
SECTOR_ETFS: Dict[str, str] = {
    "XLK":  "Technology",
    "XLF":  "Financials",
    "XLY":  "Consumer Discretionary",
    "XLC":  "Communication Services",
    "XLV":  "Health Care",
    "XLI":  "Industrials",
    "XLP":  "Consumer Staples",
    "XLE":  "Energy",
    "XLU":  "Utilities",
    "XLRE": "Real Estate",
    "XLB":  "Materials",
}

# Approximate S&P 500 sector weights (%), used as tile weights
SECTOR_WEIGHTS: Dict[str, float] = {
    "XLK": 34.0, "XLF": 13.8, "XLY": 10.4, "XLC": 9.9, "XLV": 8.8, "XLI": 8.6,
    "XLP": 5.2,  "XLE": 3.0,  "XLU": 2.5,  "XLRE": 2.0, "XLB": 1.9,
}

# CoinGecko ids for the crypto heatmap
CRYPTO_IDS: List[str] = [
    "bitcoin", "ethereum", "binancecoin", "solana", "ripple",
    "cardano", "dogecoin", "tron", "avalanche-2", "toncoin",
    "chainlink", "polkadot", "uniswap", "litecoin", "polygon",
]
