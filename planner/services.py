from typing import Any, Dict, List, Optional

from planner.api import ApiClient
from planner.budget import budget_status_from_json
from planner.domain import (
    ROLE_USER, ROLES, AuthResponse, BudgetStatus, Category, User,
    auth_response_from_json, category_from_json, user_from_json,
)


class AuthService:
    """Authentication and profile endpoints."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def register(self, email: str, password: str, name: Optional[str] = None) -> AuthResponse:
        body = {"email": email, "password": password}
        if name:
            body["name"] = name
        data = await self.api.post("/auth/register", json=body)
        return auth_response_from_json(data)

    async def login(self, email: str, password: str) -> AuthResponse:
        data = await self.api.post("/auth/login", json={"email": email, "password": password})
        return auth_response_from_json(data)

    async def logout(self, refresh_token: str, access_token: Optional[str] = None) -> None:
        # the caller may already have cleared the store, so the bearer is passed in
        await self.api.post("/auth/logout", json={"refreshToken": refresh_token}, token=access_token)

    async def get_profile(self, access_token: Optional[str] = None) -> User:
        data = await self.api.get("/users/me", token=access_token)
        return user_from_json(data)

    async def update_profile(
        self,
        name: Optional[str] = None,
        language: Optional[str] = None,
        currency_code: Optional[str] = None,
    ) -> User:
        updates = {"name": name, "language": language, "currencyCode": currency_code}
        body = {k: v for k, v in updates.items() if v is not None}
        data = await self.api.put("/users/me", json=body)
        return user_from_json(data)


class BudgetsService:

    def __init__(self, api: ApiClient):
        self.api = api

    async def get_all(self, month: Optional[int] = None, year: Optional[int] = None) -> List[dict]:
        return await self.api.get("/budgets", params={"month": month, "year": year}) or []

    async def get_status(self, month: int, year: int) -> List[BudgetStatus]:
        """Status per budgeted category, derived again from the raw amounts."""
        data = await self.api.get("/budgets/status", params={"month": month, "year": year}) or []
        return [budget_status_from_json(item) for item in data]

    async def create(self, category_id: str, amount: float, month: int, year: int) -> dict:
        return await self.api.post(
            "/budgets",
            json={"categoryId": category_id, "amount": amount, "month": month, "year": year},
        )

    async def update(self, budget_id: str, amount: float) -> dict:
        return await self.api.put(f"/budgets/{budget_id}", json={"amount": amount})

    async def delete(self, budget_id: str) -> None:
        await self.api.delete(f"/budgets/{budget_id}")


class CategoriesService:

    def __init__(self, api: ApiClient):
        self.api = api

    async def get_all(self) -> List[Category]:
        data = await self.api.get("/categories") or []
        return [category_from_json(c) for c in data]

    async def create(self, name: str, type: str, icon: Optional[str] = None, color: Optional[str] = None) -> Category:
        body = {"name": name, "type": type}
        if icon:
            body["icon"] = icon
        if color:
            body["color"] = color
        return category_from_json(await self.api.post("/categories", json=body))

    async def update(self, category_id: str, **updates) -> Category:
        return category_from_json(await self.api.put(f"/categories/{category_id}", json=updates))

    async def delete(self, category_id: str) -> None:
        await self.api.delete(f"/categories/{category_id}")


class TransactionsService:

    def __init__(self, api: ApiClient):
        self.api = api

    async def get_all(self, **params) -> Dict[str, Any]:
        """Paginated: {"data": [...], "meta": {total, page, limit, totalPages}}."""
        return await self.api.get("/transactions", params=params)

    async def get_one(self, transaction_id: str) -> dict:
        return await self.api.get(f"/transactions/{transaction_id}")

    async def create(
        self,
        category_id: str,
        type: str,
        amount: float,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        date: Optional[str] = None,
    ) -> dict:
        fields = {"currency": currency, "description": description, "date": date}
        body = {"categoryId": category_id, "type": type, "amount": amount}
        body.update({k: v for k, v in fields.items() if v is not None})
        return await self.api.post("/transactions", json=body)

    async def update(self, transaction_id: str, **updates) -> dict:
        return await self.api.put(f"/transactions/{transaction_id}", json=updates)

    async def delete(self, transaction_id: str) -> None:
        await self.api.delete(f"/transactions/{transaction_id}")

    async def get_balance(self) -> dict:
        return await self.api.get("/transactions/balance")

    async def get_recent(self) -> List[dict]:
        return await self.api.get("/transactions/recent") or []


class ReportsService:

    def __init__(self, api: ApiClient):
        self.api = api

    async def get_monthly(self, month: int, year: int) -> dict:
        return await self.api.get("/reports/monthly", params={"month": month, "year": year})

    async def get_yearly_trend(self, year: int) -> dict:
        return await self.api.get("/reports/yearly-trend", params={"year": year})


class ApiKeysService:

    def __init__(self, api: ApiClient):
        self.api = api

    async def get_all(self) -> List[dict]:
        return await self.api.get("/api-keys") or []

    async def create(self, name: str) -> dict:
        return await self.api.post("/api-keys", json={"name": name})

    async def revoke(self, key_id: str) -> dict:
        return await self.api.put(f"/api-keys/{key_id}/revoke")

    async def delete(self, key_id: str) -> None:
        await self.api.delete(f"/api-keys/{key_id}")


class AdminService:

    def __init__(self, api: ApiClient):
        self.api = api

    async def get_users(self, page: int = 1, limit: int = 20) -> dict:
        return await self.api.get("/admin/users", params={"page": page, "limit": limit})

    async def block_user(self, user_id: str) -> dict:
        return await self.api.put(f"/admin/users/{user_id}/block")

    async def unblock_user(self, user_id: str) -> dict:
        return await self.api.put(f"/admin/users/{user_id}/unblock")

    async def delete_user(self, user_id: str) -> None:
        await self.api.delete(f"/admin/users/{user_id}")

    async def get_statistics(self) -> dict:
        return await self.api.get("/admin/statistics")

    async def create_user(self, email: str, password: str, name: str = "", role: str = ROLE_USER) -> dict:
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role!r}")
        body = {"email": email, "password": password, "role": role}
        if name:
            body["name"] = name
        return await self.api.post("/admin/users", json=body)

    async def get_default_categories(self) -> List[Category]:
        data = await self.api.get("/admin/categories") or []
        return [category_from_json(c) for c in data]

    async def create_category(self, name: str, type: str, icon: Optional[str] = None, color: Optional[str] = None) -> Category:
        body = {"name": name, "type": type}
        if icon:
            body["icon"] = icon
        if color:
            body["color"] = color
        return category_from_json(await self.api.post("/admin/categories", json=body))

    async def update_category(self, category_id: str, **updates) -> Category:
        return category_from_json(await self.api.put(f"/admin/categories/{category_id}", json=updates))

    async def delete_category(self, category_id: str) -> None:
        await self.api.delete(f"/admin/categories/{category_id}")

    async def get_currencies(self) -> List[dict]:
        """Each: {id, code, name, symbol, isActive}."""
        return await self.api.get("/admin/currencies") or []

    async def update_currency(self, currency_id: str, **updates) -> dict:
        return await self.api.put(f"/admin/currencies/{currency_id}", json=updates)

    async def get_settings(self) -> Dict[str, str]:
        return await self.api.get("/admin/settings") or {}

    async def update_settings(self, settings: Dict[str, str]) -> Dict[str, str]:
        return await self.api.put("/admin/settings", json=settings)
