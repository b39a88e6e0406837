from typing import Dict, List
from .keyspace import Keyspace


def index_statement(keyspace: Keyspace, name: str, fields: List[str]) -> str:
    return (
        f"CREATE INDEX IF NOT EXISTS `{name}` "
        f"ON {keyspace}({', '.join(fields)}) "
        f"USING GSI"
    )


async def ensure_indexes(keyspace: Keyspace, indexes: Dict[str, List[str]]) -> List[str]:
    """
    Create the secondary indexes a collection's queries rely on.

    Args:
        keyspace: Target collection
        indexes: Index name -> ordered list of indexed fields

    Returns:
        Names of the indexes that were ensured
    """
    await keyspace.query(f"CREATE PRIMARY INDEX IF NOT EXISTS ON {keyspace} USING GSI")
    for name, fields in indexes.items():
        await keyspace.query(index_statement(keyspace, name, fields))
    return list(indexes)
