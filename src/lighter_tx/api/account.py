"""Account snapshot lookup used when closing positions."""

from lighter_tx.api.client import ApiClient
from lighter_tx.api.models import Account, parse_response
from lighter_tx.exceptions import NotFoundError


class AccountApi:
    """Wrapper for ``GET /api/v1/account``."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def get_account(self, account_index: int) -> Account:
        payload = await self.client.get(
            "/api/v1/account", params={"by": "index", "value": str(account_index)}
        )
        # The endpoint wraps results in {"accounts": [...]}
        if isinstance(payload, dict) and "accounts" in payload:
            accounts = payload.get("accounts") or []
            if not accounts:
                raise NotFoundError(f"Account {account_index} not found")
            payload = accounts[0]
        return parse_response(Account, payload, "account")
