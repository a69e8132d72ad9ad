"""
Repository layer for database operations
Repositories handle all database interactions using Supabase
"""

from app.repositories.base import BaseRepository
from app.repositories.recipe_repository import RecipeRepository
from app.repositories.youtube_job_repository import YouTubeJobRepository

__all__ = [
    "BaseRepository",
    "RecipeRepository",
    "YouTubeJobRepository",
]
