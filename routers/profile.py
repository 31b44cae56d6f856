from fastapi import APIRouter
from schemas.user_schemas import UpdateUserRequest, UserResponse
from utils.deps import current_user_dependency, user_service_dependency


router = APIRouter(
    prefix="/profile",
    tags=["profile"]
)


@router.get("", response_model=UserResponse)
def get_profile(user_id: current_user_dependency, users: user_service_dependency):
    """
    Current user info (protected endpoint).
    """
    return users.get_by_id(user_id)


@router.put("", response_model=UserResponse)
def update_profile(body: UpdateUserRequest, user_id: current_user_dependency,
                   users: user_service_dependency):
    return users.update(user_id, first_name=body.first_name,
                        last_name=body.last_name, email=body.email)
