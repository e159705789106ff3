"""
当前主体相关路由
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_current_principal
from core.response import success_response
from core.security import Principal


router = APIRouter(prefix="/me", tags=["Account"])


@router.get("", summary="当前主体")
async def read_current_principal(
    principal: Principal = Depends(get_current_principal),
):
    """返回当前已认证主体"""
    return success_response(
        data={"name": principal.name, "roles": sorted(principal.roles)},
        message="Current principal",
    )
