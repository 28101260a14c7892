# giftlist/routers/users.py

from fastapi import APIRouter, Depends

from giftlist.models.user import User
from giftlist.schemas.user import UserOut
from giftlist.utils.auth_dep import get_current_user_or_create

router = APIRouter(prefix="/users")


@router.get("/me", response_model=UserOut)
def read_current_user(current_user: User = Depends(get_current_user_or_create)):
    """Текущий пользователь; при первом входе создаётся из токена."""
    return current_user
