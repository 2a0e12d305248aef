from fastapi import APIRouter

from prism.api.routes import calculators, drafts, label_mappings

api_router = APIRouter()
api_router.include_router(calculators.router)
api_router.include_router(drafts.router)
api_router.include_router(label_mappings.router)
