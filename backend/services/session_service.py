import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from config import Settings, settings
from constants import LOGGER_NAME
from gateway import BackendGateway
from schemas import PosProfile, Privileges
from security import decrypt_secret

logger = logging.getLogger(LOGGER_NAME)


@dataclass(frozen=True)
class SessionContext:
    user: Optional[str]
    profile: PosProfile
    privileges: Privileges
    walk_in_customer: str = "Walking Customer"
    price_list: str = "Standard Selling"
    taxes_template: str = ""
    default_warehouse: str = ""
    default_uom: str = "Nos"

    @property
    def profile_name(self) -> str:
        return self.profile.name

    @property
    def tax_rate(self) -> float:
        return self.profile.tax_rate

    @property
    def payment_modes(self) -> List[str]:
        return list(self.profile.payment_modes)

    @property
    def default_payment_mode(self) -> Optional[str]:
        return self.profile.payment_modes[0] if self.profile.payment_modes else None

    def can(self, action: str) -> bool:
        if action == "save":
            return self.privileges.sales
        if action in ("confirm", "pay"):
            return self.privileges.billing
        if action == "return":
            return self.privileges.returns
        return True


def _flag(entry: Dict[str, Any], key: str) -> bool:
    try:
        return int(entry.get(key) or 0) == 1
    except (TypeError, ValueError):
        return False


def resolve_privileges(users: List[Dict[str, Any]], user: Optional[str]) -> Privileges:
    match = None
    if user:
        match = next((entry for entry in users if entry.get("user") == user), None)
        if match is None:
            prefix = user.split("@")[0]
            match = next(
                (entry for entry in users if str(entry.get("user") or "").split("@")[0] == prefix),
                None,
            )
    if match is None and users:
        match = users[0]
    if match is None:
        return Privileges()
    return Privileges(
        sales=_flag(match, "custom_sales_counter"),
        billing=_flag(match, "custom_billing_counter"),
        returns=_flag(match, "custom_return_counter"),
    )


def resolve_backend_password(config: Settings) -> Optional[str]:
    if config.backend_password_encrypted:
        return decrypt_secret(config.backend_password_encrypted)
    return config.backend_password


def build_context(profile: PosProfile, user: Optional[str], config: Settings = settings) -> SessionContext:
    return SessionContext(
        user=user,
        profile=profile,
        privileges=resolve_privileges(profile.users, user),
        walk_in_customer=config.walk_in_customer,
        price_list=profile.price_list or config.price_list,
        taxes_template=config.taxes_template,
        default_warehouse=profile.warehouse or config.default_warehouse,
        default_uom=config.default_uom,
    )


async def open_session(gateway: BackendGateway, config: Settings = settings) -> SessionContext:
    if config.backend_username:
        password = resolve_backend_password(config)
        if not password:
            raise RuntimeError("POS_BACKEND_PASSWORD or POS_BACKEND_PASSWORD_ENCRYPTED is required")
        await gateway.login(config.backend_username, password)

    user = await gateway.get_logged_user() or config.backend_username
    profile = await gateway.get_pos_profile()
    context = build_context(profile, user, config)
    logger.info(
        "Session ready user=%s profile=%s privileges=%s",
        user,
        profile.name,
        context.privileges.model_dump(),
    )
    return context
