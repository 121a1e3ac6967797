from fastapi import APIRouter, Depends

from config import config
from trip_import.enrichment import TravelEnricher
from .dependencies import AiAccess, AiOperationGuard, get_enricher
from .errors import success
from .schemas import GenerateTipsRequest, SuggestRestaurantsRequest

router = APIRouter(prefix="/v1", tags=["enrichment"])

tips_guard = AiOperationGuard(
    "generate-tips",
    config.ENRICHMENT_LIMIT_PER_HOUR,
    config.ENRICHMENT_TIMEOUT_MS,
)
restaurants_guard = AiOperationGuard(
    "suggest-restaurants",
    config.ENRICHMENT_LIMIT_PER_HOUR,
    config.ENRICHMENT_TIMEOUT_MS,
)


@router.post("/generate-tips")
async def generate_tips(
    body: GenerateTipsRequest,
    access: AiAccess = Depends(tips_guard),
    enricher: TravelEnricher = Depends(get_enricher),
):
    try:
        result = await enricher.generate_tips(
            hotel_name=body.hotel_name,
            location=body.location,
            check_in=body.check_in,
            check_out=body.check_out,
            trip_destination=body.trip_destination,
            timeout_ms=access.timeout_ms,
        )
    except Exception:
        await access.track("failed")
        raise

    await access.track("success", provider=result.provider)
    tips = result.data
    return success({
        "travelTip": tips["travel_tip"],
        "howToArrive": tips["how_to_arrive"],
        "nearbyAttractions": tips["nearby_attractions"],
        "nearbyRestaurants": tips["nearby_restaurants"],
        "localTip": tips["local_tip"],
        "provider_meta": result.provider_meta,
    })


@router.post("/suggest-restaurants")
async def suggest_restaurants(
    body: SuggestRestaurantsRequest,
    access: AiAccess = Depends(restaurants_guard),
    enricher: TravelEnricher = Depends(get_enricher),
):
    try:
        result = await enricher.suggest_restaurants(
            city=body.city,
            location=body.location,
            trip_destination=body.trip_destination,
            timeout_ms=access.timeout_ms,
        )
    except Exception:
        await access.track("failed")
        raise

    await access.track("success", provider=result.provider, items=len(result.data))
    items = [
        {
            "name": item["name"],
            "city": item["city"],
            "cuisine": item["cuisine"],
            "priceRange": item["price_range"],
            "specialty": item["specialty"],
            "neighborhood": item["neighborhood"],
        }
        for item in result.data
    ]
    return success({"items": items, "provider_meta": result.provider_meta})
