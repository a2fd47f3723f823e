from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends, Form, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from school_app.core.database import get_db
from school_app.core.logger import logger
from school_app.services.auth import AuthService
from school_app.services.teacher import TeacherService
from school_app.api.v1.endpoints.teacher import teacher_response
from school_app.api.v1.schemas.auth import TokenResponse, RegisterResponse, CreateTeacher, TeacherResponse
from school_app.utils.roles import require_roles, get_organization_id, Role

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
        form_data: OAuth2PasswordRequestForm = Depends(),
        db: AsyncSession = Depends(get_db)
):
    """
    Authenticate a platform admin, organization admin or teacher and issue a JWT.

    Args:
        form_data: OAuth2 form (username and password)
        db: Async SQLAlchemy session

    Returns:
        TokenResponse: Token, token type, role and username

    Raises:
        HTTPException: 401 - Wrong credentials
    """
    auth_result = await AuthService.authenticate_user(form_data.username, form_data.password, db)

    if not auth_result:
        logger.warning("[LOGIN] Failed login: wrong credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Wrong login or password"
        )

    user, role = auth_result["user"], auth_result["role"]
    access_token = AuthService.create_token(
        user.login, role, user.id, AuthService.organization_id_for(user, role)
    )

    logger.info(f"[LOGIN] Successful login: {form_data.username}, role: {role.value}")
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        role=role.value,
        username=form_data.username
    )


@router.post("/register", response_model=RegisterResponse)
async def register_platform_admin(
        username: str = Form(...),
        password: str = Form(...),
        secret_key: Optional[str] = Form(None),
        db: AsyncSession = Depends(get_db)
):
    """
    Register a platform administrator.

    Raises:
        HTTPException: 401 - Wrong platform key
        HTTPException: 400 - Login already taken
    """
    if not AuthService.verify_platform_key(secret_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Wrong secret key"
        )

    try:
        admin = await AuthService.register_platform_admin(username, password, db)
    except ValueError as e:
        logger.error(f"[REGISTRATION] Platform admin {username} not registered: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        ) from e

    access_token = AuthService.create_token(admin.login, Role.PLATFORM_ADMIN, admin.id, None)
    return RegisterResponse(
        username=admin.login,
        role=Role.PLATFORM_ADMIN.value,
        access_token=access_token
    )


@router.post("/register-organization", response_model=RegisterResponse)
async def register_organization(
        name: str = Form(...),
        username: str = Form(...),
        password: str = Form(...),
        db: AsyncSession = Depends(get_db)
):
    """
    Sign up a school; the returned token belongs to its organization admin.

    Raises:
        HTTPException: 400 - Login already taken
    """
    try:
        organization = await AuthService.register_organization(name, username, password, db)
    except ValueError as e:
        logger.error(f"[REGISTRATION] Organization {username} not registered: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        ) from e

    access_token = AuthService.create_token(
        organization.login, Role.ORG_ADMIN, organization.id, organization.id
    )
    return RegisterResponse(
        username=organization.login,
        role=Role.ORG_ADMIN.value,
        access_token=access_token
    )


@router.post("/teachers", response_model=TeacherResponse, status_code=status.HTTP_201_CREATED)
async def create_teacher(
        teacher_data: CreateTeacher,
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.ORG_ADMIN]))
):
    """
    Create a teacher account in the caller's organization and assign its subjects.

    Raises:
        HTTPException: 400 - Login already taken or unknown subject ID
    """
    organization_id = get_organization_id(current_user)
    await TeacherService.get_subjects(teacher_data.subjectIds, organization_id, db)

    try:
        teacher = await AuthService.register_teacher(
            organization_id=organization_id,
            login=teacher_data.login,
            password=teacher_data.password,
            full_name=teacher_data.fullName,
            db=db
        )
    except ValueError as e:
        logger.warning(f"[CREATE TEACHER] {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        ) from e

    teacher = await TeacherService.assign_subjects(teacher.id, organization_id, teacher_data.subjectIds, db)
    return teacher_response(teacher)


@router.get("/organizations", status_code=status.HTTP_200_OK)
async def get_organizations(
        db: AsyncSession = Depends(get_db),
        current_user: dict = Depends(require_roles([Role.PLATFORM_ADMIN]))
) -> List[dict]:
    organizations = await AuthService.get_organizations(db)
    return [
        {"id": organization.id, "name": organization.name, "login": organization.login}
        for organization in organizations
    ]
