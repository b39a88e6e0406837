from .config import (
    DEFAULT_BUCKET_NAME,
    get_cluster,
    check_connection
)
from .keyspace import (
    Keyspace,
    get_keyspace,
)
from .base_model import (
    BaseModelCouchbase,
    BaseCouchbaseEntityData,
    DataT,
    T
)
from .indexes import ensure_indexes

from couchbase.exceptions import DocumentNotFoundException, CASMismatchException
