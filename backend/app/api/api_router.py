from fastapi import APIRouter
from app.api.routes.cookies import cookies_router
from app.api.routes.drafts import drafts_router
from app.api.routes.listings import listings_router
from app.api.routes.temp_storage import temp_storage_router
from app.api.routes.widget import widget_router

api_router = APIRouter()

api_router.include_router(cookies_router)
api_router.include_router(temp_storage_router)
api_router.include_router(drafts_router)
api_router.include_router(listings_router)
api_router.include_router(widget_router)
