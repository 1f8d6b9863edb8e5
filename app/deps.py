# app/deps.py
# FastAPI dependencies shared by the routers (NO import from main.py)
from fastapi import Depends

from app.db import get_app_pool
from app.services.rank_store import CompletionStore, UserRankStore
from discord_manager import discord_manager

def get_completion_store(pool=Depends(get_app_pool)) -> CompletionStore:
    return CompletionStore(pool)

def get_rank_store(pool=Depends(get_app_pool)) -> UserRankStore:
    return UserRankStore(pool)

def get_notifier():
    return discord_manager
