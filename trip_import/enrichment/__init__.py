"""Travel enrichment (tips, restaurant suggestions)."""
from .service import EnrichmentResult, TravelEnricher, sanitize_restaurants, sanitize_tips

__all__ = ["EnrichmentResult", "TravelEnricher", "sanitize_restaurants", "sanitize_tips"]
