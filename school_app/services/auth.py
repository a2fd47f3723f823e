from typing import List, Optional, Type, Union
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_app.core.config import settings
from school_app.core.jwt import create_access_token
from school_app.core.logger import logger
from school_app.models import PlatformAdmin, Organization, Teacher
from school_app.utils.roles import Role
from school_app.utils.security import hash_password, verify_password

USER_MODELS = {
    Role.PLATFORM_ADMIN: PlatformAdmin,
    Role.ORG_ADMIN: Organization,
    Role.TEACHER: Teacher,
}


class AuthService:
    @staticmethod
    async def authenticate_user(
            username: str,
            password: str,
            db: AsyncSession
    ) -> Optional[dict]:
        """
        Find and authenticate a platform admin, organization or teacher.

        Args:
            username: Login
            password: Plain password
            db: Async SQLAlchemy session

        Returns:
            Optional[dict]: The user and its role, or None
        """
        for role, user_model in USER_MODELS.items():
            result = await db.execute(select(user_model).filter(user_model.login == username))
            user = result.scalars().first()

            if user and verify_password(password, user.password):
                logger.info(f"[AUTHENTICATION] Login succeeded: {username}, role: {role.value}")
                return {"user": user, "role": role}

        logger.warning(f"[AUTHENTICATION] Unknown user or wrong password: {username}")
        return None

    @staticmethod
    def verify_platform_key(secret_key: Optional[str]) -> bool:
        if secret_key and secret_key == settings.PLATFORM_ADMIN_KEY:
            logger.info("[KEY CHECK] Platform key accepted")
            return True

        logger.warning("[KEY CHECK] Wrong platform key")
        return False

    @staticmethod
    def organization_id_for(user: Union[PlatformAdmin, Organization, Teacher], role: Role) -> Optional[int]:
        if role == Role.ORG_ADMIN:
            return user.id
        if role == Role.TEACHER:
            return user.organization_id
        return None

    @staticmethod
    def create_token(login: str, role: Role, id: int, organization_id: Optional[int]) -> str:
        """
        Create an access token.

        Args:
            login: User login
            role: User role
            id: User identifier
            organization_id: Organization the user acts for, None for platform admins

        Returns:
            str: Encoded JWT
        """
        logger.info(f"[CREATE TOKEN] For {login}, role: {role.value}")
        return create_access_token(
            data={"sub": login, "role": role.value, "id": id, "org_id": organization_id},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )

    @staticmethod
    async def _login_taken(login: str, db: AsyncSession) -> bool:
        for user_model in USER_MODELS.values():
            result = await db.execute(select(user_model.id).filter(user_model.login == login))
            if result.scalars().first() is not None:
                return True
        return False

    @staticmethod
    async def _base_registration(
            db: AsyncSession,
            model_class: Type[Union[PlatformAdmin, Organization, Teacher]],
            login: str,
            **kwargs
    ) -> Union[PlatformAdmin, Organization, Teacher]:
        """
        Registration shared by every role; logins are unique across roles.
        """
        if await AuthService._login_taken(login, db):
            logger.warning(f"[REGISTRATION] Login already taken: {login}")
            raise ValueError(f"Login {login} is already taken")

        user = model_class(login=login, **kwargs)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info(f"[REGISTRATION] User {login} registered")
        return user

    @staticmethod
    async def register_platform_admin(login: str, password: str, db: AsyncSession) -> PlatformAdmin:
        return await AuthService._base_registration(
            db=db,
            model_class=PlatformAdmin,
            login=login,
            password=hash_password(password),
            role=Role.PLATFORM_ADMIN.value
        )

    @staticmethod
    async def register_organization(
            name: str,
            login: str,
            password: str,
            db: AsyncSession
    ) -> Organization:
        """
        Register a school.

        Raises:
            ValueError: Login already taken
        """
        return await AuthService._base_registration(
            db=db,
            model_class=Organization,
            login=login,
            password=hash_password(password),
            role=Role.ORG_ADMIN.value,
            name=name
        )

    @staticmethod
    async def register_teacher(
            organization_id: int,
            login: str,
            password: str,
            full_name: str,
            db: AsyncSession
    ) -> Teacher:
        """
        Register a teacher inside an organization.

        Raises:
            ValueError: Login already taken
        """
        return await AuthService._base_registration(
            db=db,
            model_class=Teacher,
            login=login,
            password=hash_password(password),
            role=Role.TEACHER.value,
            full_name=full_name,
            organization_id=organization_id
        )

    @staticmethod
    async def get_organizations(db: AsyncSession) -> List[Organization]:
        result = await db.execute(select(Organization).order_by(Organization.name))
        return list(result.scalars().all())
