from roof_finder.api.routes.roof_leads import router as roof_leads_router

__all__ = [
    "roof_leads_router",
]
