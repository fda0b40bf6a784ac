from foodconnect.core.errors import Forbidden

def ensure_owner(resource_owner_id, user_id, detail: str = "Not authorized"):
    if str(resource_owner_id) != str(user_id):
        raise Forbidden(detail)
