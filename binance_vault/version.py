"""Binance Vault Meta information.
   Binance Vault keeps exchange API secrets encrypted at rest and
   proxies signed REST calls to the Binance markets.
"""
__title__ = 'binance_vault'
__description__ = (
   'Binance Vault keeps exchange API secrets encrypted at rest '
   'and proxies signed REST calls to the Binance markets.'
)
__version__ = '0.3.0'
__license__ = 'Apache-2.0'
