"""
Accounts: registration, login, token refresh and profiles.

A driver registration creates the identity row and the driver profile in
the same transaction, so a failure on either leaves nothing behind.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.domain.entities import Identity
from meditransport.domain.enums import Capability, Role, VehicleType
from meditransport.domain.errors import Conflict, Forbidden, NotFound, Unauthorized
from meditransport.infrastructure.models import DriverModel, UserModel
from meditransport.infrastructure.repositories import DriverRepository, UserRepository
from meditransport.infrastructure.security import (
    REFRESH,
    create_token_pair,
    decode_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)


def tokens_for(user: UserModel) -> dict[str, str]:
    return create_token_pair(user.id, user.email, Role(user.role).value)


class AccountService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.drivers = DriverRepository(session)

    async def register(
        self,
        *,
        name: str,
        email: str,
        password: str,
        role: Role = Role.PATIENT,
        phone: Optional[str] = None,
        license_number: Optional[str] = None,
        vehicle_type: Optional[VehicleType] = None,
    ) -> UserModel:
        email = email.lower()
        if await self.users.get_by_email(email) is not None:
            raise Conflict("User already exists with this email")

        user = await self.users.create(
            UserModel(
                name=name,
                email=email,
                phone=phone,
                password_hash=hash_password(password),
                role=role,
            )
        )
        if role is Role.DRIVER:
            await self.drivers.create(
                DriverModel(
                    user_id=user.id,
                    license_number=license_number,
                    vehicle_type=vehicle_type,
                )
            )
        await self.session.commit()
        logger.info("Registered %s %s", role.value, user.id)
        return user

    async def login(self, email: str, password: str) -> UserModel:
        user = await self.users.get_by_email(email.lower())
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email)
            raise Unauthorized("Invalid credentials")
        return user

    async def refresh(self, refresh_token: str) -> UserModel:
        payload = decode_token(refresh_token, REFRESH)
        user = await self.users.get_by_id(payload["sub"])
        if user is None:
            raise Unauthorized("User not found")
        return user

    async def resolve(self, user_id: str) -> Identity:
        """Turn a verified token subject into the caller's identity."""
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise Unauthorized("User not found")
        role = Role(user.role)
        driver_id = None
        if role is Role.DRIVER:
            driver = await self.drivers.get_by_user_id(user.id)
            driver_id = driver.id if driver is not None else None
        return Identity(
            id=user.id, role=role, email=user.email, name=user.name, driver_id=driver_id
        )

    async def profile(self, identity: Identity) -> dict[str, Any]:
        user = await self.users.get_by_id(identity.id)
        if user is None:
            raise NotFound("User not found")
        driver_info = None
        if identity.driver_id is not None:
            found = await self.drivers.get_with_vehicle(identity.driver_id)
            if found is not None:
                driver, vehicle = found
                driver_info = {"driver": driver, "vehicle": vehicle}
        return {"user": user, "driver_info": driver_info}

    async def update_profile(
        self,
        identity: Identity,
        *,
        name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> UserModel:
        user = await self.users.get_by_id(identity.id)
        if user is None:
            raise NotFound("User not found")
        if name is not None:
            user.name = name
        if phone is not None:
            user.phone = phone
        await self.session.flush()
        await self.session.commit()
        return user

    async def list_users(
        self, identity: Identity, role: Optional[Role], limit: int, offset: int
    ) -> tuple[list[UserModel], int]:
        if not identity.can(Capability.LIST_USERS):
            raise Forbidden("Required role: admin")
        return await self.users.list(role, limit, offset)
