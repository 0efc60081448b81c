from fastapi import HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from ..models.user import UserRole, Profile
from ..database import get_supabase, get_supabase_admin
from ..services.redis import redis_client
from ..core.cache import CacheKeys

security = HTTPBearer()

PROFILE_CACHE_SECONDS = 300

def resolve_user(token: str) -> dict:
    """Look up the Supabase user behind a bearer token, with its profile role"""
    try:
        user = get_supabase().auth.get_user(token)
    except Exception:
        user = None
    if not user or not user.user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )

    user_id = user.user.id
    cache_key = CacheKeys.USER_PROFILE.format(user_id=user_id)
    cached = redis_client.get(cache_key)
    if cached and isinstance(cached, dict) and "id" in cached:
        return cached

    result = get_supabase_admin().table("profiles").select("*").eq("id", user_id).limit(1).execute()
    row = result.data[0] if result.data else {"id": user_id}
    row["role"] = row.get("role") or UserRole.CUSTOMER.value
    row["email"] = row.get("email") or user.user.email
    profile = Profile.model_validate(row).model_dump(mode="json")

    redis_client.set(cache_key, profile, PROFILE_CACHE_SECONDS)
    return profile

async def get_current_user(token: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    return resolve_user(token.credentials)

def _check_role(current_user: dict, allowed_roles) -> dict:
    if current_user.get("role") not in [r.value for r in allowed_roles]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions"
        )
    return current_user

async def require_admin(current_user: dict = Depends(get_current_user)):
    return _check_role(current_user, [UserRole.ADMIN])

async def require_chef_staff(current_user: dict = Depends(get_current_user)):
    return _check_role(current_user, [UserRole.CHEF, UserRole.ADMIN])
