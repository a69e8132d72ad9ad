"""
Base repository with common database operations
"""
import asyncio
from typing import Optional, List, Dict, Any
from supabase import Client
import logging

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    Base repository class with common CRUD operations.

    The supabase client is synchronous; queries run through _execute so
    they happen on a worker thread instead of blocking the event loop.
    """

    def __init__(self, supabase: Client, table_name: str):
        self.supabase = supabase
        self.table_name = table_name

    def table(self):
        return self.supabase.table(self.table_name)

    async def _execute(self, query):
        return await asyncio.to_thread(query.execute)

    async def create(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Create a new record"""
        try:
            response = await self._execute(self.table().insert(data))
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error creating record in {self.table_name}: {str(e)}")
            raise

    async def get_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Get a record by ID"""
        try:
            response = await self._execute(self.table().select("*").eq("id", record_id))
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error fetching record from {self.table_name}: {str(e)}")
            raise

    async def update(self, record_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a record by ID"""
        try:
            logger.debug(f"Updating {self.table_name} id={record_id} with data keys: {list(data.keys())}")
            response = await self._execute(self.table().update(data).eq("id", record_id))
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error updating record in {self.table_name}: {str(e)}")
            raise

    async def delete(self, record_id: str) -> bool:
        """Delete a record by ID"""
        try:
            response = await self._execute(self.table().delete().eq("id", record_id))
            return len(response.data or []) > 0
        except Exception as e:
            logger.error(f"Error deleting record from {self.table_name}: {str(e)}")
            raise

    async def list(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
        order_by: Optional[str] = None,
        ascending: bool = False
    ) -> List[Dict[str, Any]]:
        """List records with optional filtering and pagination"""
        try:
            query = self.table().select("*")

            # Apply filters
            if filters:
                for key, value in filters.items():
                    query = query.eq(key, value)

            # Apply ordering
            if order_by:
                query = query.order(order_by, desc=not ascending)

            # Apply pagination
            query = query.range(offset, offset + limit - 1)

            response = await self._execute(query)
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing records from {self.table_name}: {str(e)}")
            raise
