"""Self-service master account registration (unauthenticated)."""

import asyncio
import logging
from dataclasses import dataclass, field

import aiohttp

from backoffice.api.client import HalClient
from backoffice.api.errors import ApiError

logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    success: bool
    data: dict | None = None
    error: str | None = None
    message: str | None = None
    details: dict[str, str] = field(default_factory=dict)


class RegistrationApi:
    """Calls /api/registration on the registration host without a bearer token."""

    def __init__(self, client: HalClient):
        self.client = client

    async def register_master_account(self, data: dict) -> RegistrationResult:
        try:
            body = await self.client.request(
                "POST", f"{self.client.base_url}/api/registration/master-account", json_body=data,
            )
        except ApiError as e:
            return RegistrationResult(
                success=False,
                error=e.error or e.message or "Registration failed",
                details=e.field_errors,
            )
        except asyncio.TimeoutError:
            logger.warning("Registration request timed out")
            return RegistrationResult(success=False, error="Registration timed out, please try again")
        except aiohttp.ClientError as e:
            logger.warning(f"Registration request failed: {e}")
            return RegistrationResult(success=False, error=str(e) or "An unexpected error occurred")

        body = body if isinstance(body, dict) else {}
        return RegistrationResult(success=True, data=body, message=body.get("message"))
