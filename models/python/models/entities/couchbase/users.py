from typing import List, Optional, Literal
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class UserData(BaseCouchbaseEntityData):
    name: str = ""
    email: str = ""
    role: Literal["buyer", "seller", "admin"] = "buyer"
    images: List[str] = []
    rating: Optional[float] = None
    location: Optional[str] = None


class User(BaseModelCouchbase[UserData]):
    _collection_name = "users"
