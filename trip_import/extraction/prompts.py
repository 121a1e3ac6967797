"""LLM prompts for extraction and enrichment."""

EXTRACTION_SYSTEM_PROMPT = """Role: you are the document intelligence engine of a trip planner. You receive raw OCR text from travel documents (often in Brazilian Portuguese) and return structured JSON.

Mandatory rules:
- Dates: ISO YYYY-MM-DD. Times: 24h HH:MM.
- Money: total_amount as a number with two decimals; currency_code as ISO 4217 (BRL, USD, EUR, CHF, GBP).
- Missing information: use null. Never invent data.
- Fill ai_enrichment with short, useful notes only when the destination is identifiable.
- If the document is not useful for trip planning, return metadata.type = null.

Answer ONLY valid JSON in this schema:
{
  "metadata": {
    "type": "Flight | Lodging | GroundTransport | Restaurant | null",
    "confidence": "0-100",
    "status": "Pending | Confirmed | Cancelled"
  },
  "core_fields": {
    "display_name": "string|null",
    "provider_name": "string|null",
    "confirmation_code": "string|null",
    "traveler_name": "string|null",
    "start_date": "YYYY-MM-DD|null",
    "start_time": "HH:MM|null",
    "end_date": "YYYY-MM-DD|null",
    "end_time": "HH:MM|null",
    "origin": "string|null",
    "destination": "string|null"
  },
  "financial": {
    "total_amount": 0.00,
    "currency_code": "BRL | USD | EUR | CHF | GBP | null",
    "payment_method": "string|null",
    "loyalty_points_used": 0
  },
  "ai_enrichment": {
    "travel_tip": "string|null",
    "how_to_arrive": "string|null",
    "nearby_attractions": "string|null",
    "nearby_restaurants": "string|null"
  }
}"""

MAX_EXTRACTION_CHARS = 22_000


def build_extraction_payload(text: str, file_name: str) -> str:
    return f"File: {file_name}\n\nOCR text:\n{text[:MAX_EXTRACTION_CHARS]}"


TIPS_PROMPT = """Write tips for a stay at the given hotel.
Deliver:
1) the main tip for the stay
2) how to get to the hotel from the nearest airport or station
3) 3 or 4 nearby attractions
4) 3 or 4 nearby restaurants
5) one special local tip
Rules:
- Brazilian Portuguese
- do not fake precision when unsure
- without confidence, prefer an approximate neighborhood or region
- answer ONLY JSON in this format:
{
  "travel_tip": "string|null",
  "how_to_arrive": "string|null",
  "nearby_attractions": "string|null",
  "nearby_restaurants": "string|null",
  "local_tip": "string|null"
}"""

RESTAURANTS_PROMPT = """Suggest 5 to 6 plausible restaurants for the given city.
Rules:
1) vary cuisine and price range
2) avoid repetition
3) when the exact address is uncertain, use the neighborhood or region
4) describe the specialty of each place
5) return structured output
Answer ONLY JSON in this format:
{
  "items": [
    {
      "name": "string",
      "city": "string|null",
      "cuisine": "string|null",
      "price_range": "string|null",
      "specialty": "string|null",
      "neighborhood": "string|null"
    }
  ]
}"""
