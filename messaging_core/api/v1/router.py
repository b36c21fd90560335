from fastapi import APIRouter

from messaging_core.api.v1 import messages, social, users, ws

api_router = APIRouter()
api_router.include_router(users.router)
api_router.include_router(social.router)
api_router.include_router(messages.router)
api_router.include_router(ws.router)
