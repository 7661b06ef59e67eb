from ride_dispatch.core.pricing.client import FareQuote, PricingClient

__all__ = ["FareQuote", "PricingClient"]
