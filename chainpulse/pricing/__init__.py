from chainpulse.pricing.cache import TTLCache
from chainpulse.pricing.resolver import PriceQuote, PriceResolver

__all__ = ["PriceQuote", "PriceResolver", "TTLCache"]
