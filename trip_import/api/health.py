from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    """Liveness probe; reports which collaborators are wired, never secrets."""
    state = request.app.state
    return {
        "status": "ok",
        "supabase": getattr(state, "supabase", None) is not None,
        "entitlementStore": type(getattr(state, "entitlement_store", None)).__name__,
        "importStore": type(getattr(state, "import_store", None)).__name__,
    }
