import uuid
from dataclasses import dataclass
from typing import Optional
from couchbase.result import MutationResult
from couchbase.options import QueryOptions
from .config import get_cluster, DEFAULT_BUCKET_NAME


@dataclass
class Keyspace:
    bucket_name: str
    scope_name: str
    collection_name: str

    def __str__(self) -> str:
        return f"{self.bucket_name}.{self.scope_name}.{self.collection_name}"

    async def query(self, query: str, **kwargs) -> list:
        """Run a N1QL statement; keyword arguments become named parameters."""
        cluster = await get_cluster()
        options = QueryOptions(named_parameters=kwargs) if kwargs else QueryOptions()
        result = cluster.query(query, options)
        return [row async for row in result]

    async def get_scope(self):
        cluster = await get_cluster()
        bucket = cluster.bucket(self.bucket_name)
        return bucket.scope(self.scope_name)

    async def get_collection(self):
        scope = await self.get_scope()
        return scope.collection(self.collection_name)

    async def insert(self, value: dict, key: Optional[str] = None, **kwargs) -> MutationResult:
        if key is None:
            key = str(uuid.uuid4())
        collection = await self.get_collection()
        return await collection.insert(key, value, **kwargs)


def get_keyspace(collection_name: str, scope_name: Optional[str] = "_default", bucket_name: Optional[str] = DEFAULT_BUCKET_NAME) -> Keyspace:
    """
    Create a Keyspace instance with optional scope and bucket parameters.

    Args:
        collection_name: Name of the collection
        scope_name: Name of the scope (defaults to "_default")
        bucket_name: Name of the bucket (defaults to DEFAULT_BUCKET_NAME)

    Returns:
        Keyspace instance
    """
    return Keyspace(bucket_name, scope_name, collection_name)
