"""In-memory Odoo stand-in for simulation mode and tests.

Implements the same RPC contract as OdooClient against a dict of records,
so simulation syncs exercise the full sync service (customer dedup,
idempotency lookups, follow-up documents) without a live ERP.
"""

import itertools
from typing import Any, Callable, Dict, List, Optional, Sequence

from connectors.erp_base import ERPConfig, ERPRpcClient, register_connector
from core.errors import ErpAuthFailure, ErpWriteFailure

SANDBOX_UID = 2


def _matches(record: Dict[str, Any], domain: List[Sequence[Any]]) -> bool:
    for field_name, operator, value in domain:
        actual = record.get(field_name)
        if operator == "=":
            if actual != value:
                return False
        elif operator == "!=":
            if actual == value:
                return False
        elif operator == "in":
            if actual not in value:
                return False
        elif operator == "ilike":
            if actual is None or str(value).lower() not in str(actual).lower():
                return False
        else:
            raise ErpWriteFailure(f"Sandbox does not support operator {operator!r}", retryable=False)
    return True


@register_connector("odoo_sandbox")
class SandboxOdooClient(ERPRpcClient):
    """Dict-backed ERP.

    ``fail_on`` lets tests inject failures: it is called with
    ``(method, model, payload)`` and may return an exception to raise.
    """

    def __init__(
        self,
        config: Optional[ERPConfig] = None,
        fail_on: Optional[Callable[[str, str, Any], Optional[Exception]]] = None,
    ):
        super().__init__(config or ERPConfig(connector_type="odoo_sandbox"))
        self.records: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self._ids = itertools.count(100)
        self.fail_on = fail_on
        self.authenticated = False
        self.reject_credentials = False
        self.calls: List[str] = []

    def _check(self, method: str, model: str, payload: Any) -> None:
        self.calls.append(f"{model}.{method}")
        if self.fail_on is not None:
            error = self.fail_on(method, model, payload)
            if error is not None:
                raise error

    async def authenticate(self) -> int:
        self._check("authenticate", "res.users", None)
        if self.reject_credentials:
            raise ErpAuthFailure("Odoo authentication failed: invalid credentials")
        self.authenticated = True
        return SANDBOX_UID

    async def create(self, model: str, values: Dict[str, Any]) -> int:
        self._check("create", model, values)
        record_id = next(self._ids)
        self.records.setdefault(model, {})[record_id] = {"id": record_id, **values}
        return record_id

    async def write(self, model: str, ids: Sequence[int], values: Dict[str, Any]) -> bool:
        self._check("write", model, values)
        table = self.records.get(model, {})
        for record_id in ids:
            if record_id not in table:
                raise ErpWriteFailure(f"{model}({record_id}) does not exist", retryable=False)
            table[record_id].update(values)
        return True

    async def search(
        self,
        model: str,
        domain: List[Sequence[Any]],
        limit: Optional[int] = None,
    ) -> List[int]:
        self._check("search", model, domain)
        ids = [rid for rid, rec in self.records.get(model, {}).items() if _matches(rec, domain)]
        return ids[:limit] if limit else ids

    async def read(
        self,
        model: str,
        ids: Sequence[int],
        fields: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        self._check("read", model, ids)
        table = self.records.get(model, {})
        rows = []
        for record_id in ids:
            record = table.get(record_id)
            if record is None:
                continue
            if fields:
                record = {k: v for k, v in record.items() if k in fields or k == "id"}
            rows.append(dict(record))
        return rows

    def count(self, model: str) -> int:
        return len(self.records.get(model, {}))
