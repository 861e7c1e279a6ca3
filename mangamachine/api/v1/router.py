from fastapi import APIRouter

from mangamachine.api.v1 import (
    cache,
    characters,
    generation,
)


api_router = APIRouter(prefix="/v1")

api_router.include_router(generation.router)
api_router.include_router(characters.router)
api_router.include_router(cache.router)
