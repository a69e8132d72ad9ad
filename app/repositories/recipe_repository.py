"""
Recipe repository for database operations
"""
from supabase import Client

from app.repositories.base import BaseRepository


class RecipeRepository(BaseRepository):
    """Repository for permanent recipes imported from extraction jobs"""

    def __init__(self, supabase: Client):
        super().__init__(supabase, "recipes")
