"""Pot/rule store interface and its REST client.

The engines only talk to a :class:`PotStore`. :class:`StoreClient` is the
production implementation: an async HTTP client for a PostgREST endpoint
(the managed Postgres behind the app). Balance increments go through the
``increment_pot_balance`` database function so that concurrent runs are
serialized per pot row by the database.
"""

from datetime import date
from typing import Any, Optional, Protocol

import httpx

from moneylens.models.schemas import (
    AllocationRule,
    AllocationTransaction,
    Debt,
    FinancialSnapshot,
    Goal,
    Pot,
    SnapshotTransaction,
)

DEFAULT_TIMEOUT = 30.0


class StoreError(Exception):
    """Base exception for store API errors."""

    def __init__(self, status_code: int, code: str, message: str, detail: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.detail = detail
        super().__init__(f"Store Error [{status_code}] {message}: {detail}")


class PotStore(Protocol):
    """What the allocation engine needs from persistence.

    Every call is scoped by the caller-supplied ``user_id``.
    ``increment_pot_balance`` must be atomic per pot.
    """

    async def get_pots(self, user_id: str) -> list[Pot]: ...

    async def get_allocation_rules(
        self, user_id: str, enabled_only: bool = True
    ) -> list[AllocationRule]: ...

    async def upsert_allocation_rule(
        self, user_id: str, rule: AllocationRule
    ) -> AllocationRule: ...

    async def create_allocation_rules(
        self, user_id: str, rules: list[AllocationRule]
    ) -> list[AllocationRule]: ...

    async def delete_allocation_rule(self, user_id: str, rule_id: str) -> bool: ...

    async def increment_pot_balance(
        self, user_id: str, pot_id: str, delta: float
    ) -> Pot: ...

    async def insert_allocation_transaction(
        self, user_id: str, record: AllocationTransaction
    ) -> AllocationTransaction: ...

    async def get_allocation_transactions(
        self, user_id: str, start_date: date, end_date: date
    ) -> list[AllocationTransaction]: ...

    async def get_financial_snapshot(self, user_id: str) -> FinancialSnapshot: ...


class StoreClient:
    """Async PostgREST client implementing :class:`PotStore`."""

    def __init__(self, base_url: str, api_key: str, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/v1",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                },
                timeout=self.timeout,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[list[tuple[str, str]]] = None,
        json_data: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        """Make an authenticated request and return the decoded JSON body.

        Errors come back as PostgREST error objects
        (``{"code", "message", "details", "hint"}``) and are raised as
        :class:`StoreError`.
        """
        headers = {"Prefer": prefer} if prefer else None

        try:
            response = await self.client.request(
                method=method,
                url=path,
                params=params,
                json=json_data,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            try:
                body = e.response.json() if e.response.content else {}
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            raise StoreError(
                status_code=e.response.status_code,
                code=str(body.get("code") or e.response.status_code),
                message=body.get("message") or "request_failed",
                detail=body.get("details") or body.get("hint") or str(e),
            ) from e
        except httpx.TimeoutException as e:
            raise StoreError(
                status_code=408,
                code="timeout",
                message="request_timeout",
                detail="Request to the store timed out. Please try again.",
            ) from e

        if not response.content:
            return None
        return response.json()

    # --- Pots ---

    async def get_pots(self, user_id: str) -> list[Pot]:
        """Get all pots for a user, lowest priority number first."""
        rows = await self._request(
            "GET", "/pots",
            params=[("user_id", f"eq.{user_id}"), ("order", "priority.asc")],
        )
        return [Pot(**row) for row in rows or []]

    async def increment_pot_balance(
        self, user_id: str, pot_id: str, delta: float
    ) -> Pot:
        """Atomically add *delta* (may be negative) to a pot's balance."""
        row = await self._request(
            "POST", "/rpc/increment_pot_balance",
            json_data={"p_user_id": user_id, "p_pot_id": pot_id, "p_amount": delta},
        )
        if isinstance(row, list):
            if not row:
                raise StoreError(404, "not_found", "pot_not_found", f"Pot {pot_id} not found")
            row = row[0]
        return Pot(**row)

    # --- Allocation rules ---

    async def get_allocation_rules(
        self, user_id: str, enabled_only: bool = True
    ) -> list[AllocationRule]:
        """Get allocation rules ordered by priority."""
        params = [("user_id", f"eq.{user_id}")]
        if enabled_only:
            params.append(("enabled", "eq.true"))
        params.append(("order", "priority.asc"))
        rows = await self._request("GET", "/allocation_rules", params=params)
        return [AllocationRule(**row) for row in rows or []]

    async def upsert_allocation_rule(
        self, user_id: str, rule: AllocationRule
    ) -> AllocationRule:
        """Insert a rule, or update it in place when its id already exists."""
        payload = {**rule.to_store_payload(), "user_id": user_id}
        rows = await self._request(
            "POST", "/allocation_rules",
            json_data=payload,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return AllocationRule(**rows[0]) if rows else rule

    async def create_allocation_rules(
        self, user_id: str, rules: list[AllocationRule]
    ) -> list[AllocationRule]:
        """Insert several rules in one request (all or nothing)."""
        payload = [{**r.to_store_payload(), "user_id": user_id} for r in rules]
        rows = await self._request(
            "POST", "/allocation_rules",
            json_data=payload,
            prefer="return=representation",
        )
        return [AllocationRule(**row) for row in rows or []]

    async def delete_allocation_rule(self, user_id: str, rule_id: str) -> bool:
        """Delete a rule. Returns ``False`` if no such rule belongs to the user."""
        rows = await self._request(
            "DELETE", "/allocation_rules",
            params=[("id", f"eq.{rule_id}"), ("user_id", f"eq.{user_id}")],
            prefer="return=representation",
        )
        return bool(rows)

    # --- Allocation history ---

    async def insert_allocation_transaction(
        self, user_id: str, record: AllocationTransaction
    ) -> AllocationTransaction:
        payload = {**record.to_store_payload(), "user_id": user_id}
        rows = await self._request(
            "POST", "/allocation_transactions",
            json_data=payload,
            prefer="return=representation",
        )
        return AllocationTransaction(**rows[0]) if rows else record

    async def get_allocation_transactions(
        self, user_id: str, start_date: date, end_date: date
    ) -> list[AllocationTransaction]:
        """Get allocation records within an inclusive date range, newest first."""
        rows = await self._request(
            "GET", "/allocation_transactions",
            params=[
                ("user_id", f"eq.{user_id}"),
                ("allocation_date", f"gte.{start_date.isoformat()}"),
                ("allocation_date", f"lte.{end_date.isoformat()}"),
                ("order", "allocation_date.desc"),
            ],
        )
        return [AllocationTransaction(**row) for row in rows or []]

    # --- Financial snapshot ---

    async def get_financial_snapshot(self, user_id: str) -> FinancialSnapshot:
        """Assemble transactions, goals, debts and starting balance for a user."""
        owner = [("user_id", f"eq.{user_id}")]
        transactions = await self._request(
            "GET", "/transactions", params=[*owner, ("order", "date.asc")]
        )
        goals = await self._request("GET", "/financial_goals", params=owner)
        debts = await self._request("GET", "/debts", params=owner)
        settings = await self._request(
            "GET", "/user_settings",
            params=[*owner, ("select", "monthly_starting_point"), ("limit", "1")],
        )

        starting_balance = 0.0
        if settings and settings[0].get("monthly_starting_point") is not None:
            starting_balance = float(settings[0]["monthly_starting_point"])

        return FinancialSnapshot(
            transactions=[SnapshotTransaction(**t) for t in transactions or []],
            goals=[Goal(**g) for g in goals or []],
            debts=[Debt(**d) for d in debts or []],
            starting_balance=starting_balance,
        )
