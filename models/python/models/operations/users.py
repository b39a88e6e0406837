from typing import Dict, Iterable, Optional

from models.entities.couchbase.users import User, UserData


async def user_get(user_id: str) -> Optional[User]:
    return await User.get(user_id)


async def user_create_if_not_exists_and_get(
    user_id: str,
    email: str = "",
    name: str = "",
    role: str = "buyer",
) -> User:
    existing_user = await User.get(user_id)
    if existing_user:
        return existing_user
    new_user_data = UserData(email=email, name=name, role=role)
    return await User.create(new_user_data, key=user_id, user_id=user_id)


async def user_get_many(user_ids: Iterable[str]) -> Dict[str, User]:
    """Load users by id, skipping ids with no document. Duplicates are read once."""
    users: Dict[str, User] = {}
    for user_id in dict.fromkeys(user_ids):
        user = await User.get(user_id)
        if user:
            users[user_id] = user
    return users
