"""Identity provider HTTP client for verifying third-party login tokens"""

import httpx
from gurtpay_ledger.domain.models import IdentityUser
from gurtpay_ledger.domain.exceptions import IdentityVerificationError
from gurtpay_ledger.config import settings
from gurtpay_ledger.infrastructure.observability.metrics import identity_failure_counter


class IdentityClient:
    """Client for the external identity (OAuth) verification endpoint"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.identity_api_base
        self.timeout = timeout or settings.http_timeout_seconds

    async def verify_token(self, token: str) -> IdentityUser:
        """
        Exchange a provider token for the provider's user identity.

        Raises:
            IdentityVerificationError: 401 when the provider rejects the token,
                502 on timeout, transport errors or an unexpected payload
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/api/auth/verify",
                    json={"token": token},
                )
                if response.status_code in (400, 401, 403):
                    identity_failure_counter.inc()
                    raise IdentityVerificationError("Identity provider rejected the token", status_code=401)
                response.raise_for_status()
                data = response.json()

                return IdentityUser(
                    user_id=str(data["user_id"]),
                    username=data["username"],
                )

            except httpx.TimeoutException as e:
                identity_failure_counter.inc()
                raise IdentityVerificationError(
                    f"Identity provider timeout after {self.timeout}s", status_code=502
                ) from e
            except httpx.HTTPError as e:
                identity_failure_counter.inc()
                raise IdentityVerificationError(f"Identity provider error: {e}", status_code=502) from e
            except (KeyError, ValueError, TypeError) as e:
                identity_failure_counter.inc()
                raise IdentityVerificationError(
                    f"Invalid identity payload: {e}", status_code=502
                ) from e
