from fastapi import APIRouter

from woodpantry_recipes.app.api.routes import ingestion, recipes

api_router = APIRouter()
# ingestion first so /recipes/ingest is not captured by /recipes/{recipe_id}
api_router.include_router(ingestion.router)
api_router.include_router(recipes.router)
