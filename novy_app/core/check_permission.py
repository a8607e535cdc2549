from models.enums import RoleName
from repos.user_repo import UserRepo

from .exceptions import ForbiddenError


class CheckRolePermission:
    def __init__(self, db):
        self.user_repo: UserRepo = UserRepo(db)

    async def has_role(self, current_user, role: RoleName) -> bool:
        roles = await self.user_repo.get_roles(current_user.id)
        return role in roles

    async def check_admin(self, current_user):
        if not await self.has_role(current_user, RoleName.ADMIN):
            raise ForbiddenError("Access Denied.")
