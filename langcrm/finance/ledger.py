"""Payments received from clients and expenditures paid out.

Amounts are summed as-is: a client's payments are assumed to be in one
currency, there is no conversion.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError

from langcrm.attribution import AttributionProvider
from langcrm.clients.views import find_client
from langcrm.errors import NotFoundError, ValidationFailed
from langcrm.models import Expenditure, Payment
from langcrm.store.base import DataStore

logger = logging.getLogger(__name__)


@dataclass
class ClientBalance:
    client_id: str
    total_fee: float
    paid: float

    @property
    def outstanding(self) -> float:
        """Negative when the client has overpaid."""
        return self.total_fee - self.paid


def _validate(model_cls, data: Union[BaseModel, dict[str, Any]]):
    if isinstance(data, BaseModel):
        data = data.model_dump()
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed.from_pydantic(e) from e


class FinanceService:
    def __init__(self, store: DataStore, attribution: AttributionProvider):
        self.store = store
        self.attribution = attribution

    # --- Payments ---

    async def record_payment(self, data: Union[Payment, dict[str, Any]]) -> Payment:
        """Record a payment; without an explicit balance, compute what is still owed."""
        payment = _validate(Payment, data)
        actor = await self.attribution.current_actor()
        client = await find_client(self.store, payment.client_id)
        if client is None:
            raise NotFoundError("client", payment.client_id)

        if payment.balance is None:
            previous = sum(p.amount for p in await self.store.list_payments(payment.client_id))
            payment.balance = client.total_fee - previous - payment.amount
            payment.balance_currency = payment.balance_currency or payment.currency

        payment.stamp_created(actor)
        created = await self.store.add_payment(payment)
        logger.info(
            f"Payment {created.payment_id}: {created.amount} {created.currency.value} "
            f"from {created.payer_name} (balance {created.balance})"
        )
        return created

    async def update_payment(self, payment_id: str, changes: dict[str, Any]) -> Payment:
        actor = await self.attribution.current_actor()
        current = await self.store.get_payment(payment_id)
        if current is None:
            raise NotFoundError("payment", payment_id)
        updated = _validate(Payment, {**current.model_dump(), **changes, "payment_id": payment_id})
        updated.stamp_modified(actor)
        return await self.store.update_payment(updated)

    async def delete_payment(self, payment_id: str) -> None:
        await self.attribution.current_actor()
        await self.store.delete_payment(payment_id)
        logger.info(f"Payment {payment_id} deleted")

    async def list_payments(self, client_id: Optional[str] = None) -> list[Payment]:
        return await self.store.list_payments(client_id)

    async def client_balance(self, client_id: str) -> ClientBalance:
        client = await find_client(self.store, client_id)
        if client is None:
            raise NotFoundError("client", client_id)
        paid = sum(p.amount for p in await self.store.list_payments(client_id))
        return ClientBalance(client_id=client_id, total_fee=client.total_fee, paid=paid)

    # --- Expenditures ---

    async def record_expenditure(self, data: Union[Expenditure, dict[str, Any]]) -> Expenditure:
        expenditure = _validate(Expenditure, data)
        actor = await self.attribution.current_actor()
        expenditure.stamp_created(actor)
        created = await self.store.add_expenditure(expenditure)
        logger.info(
            f"Expenditure {created.expenditure_id}: {created.amount} {created.currency.value} "
            f"to {created.payee_name} ({created.category.value})"
        )
        return created

    async def update_expenditure(self, expenditure_id: str, changes: dict[str, Any]) -> Expenditure:
        actor = await self.attribution.current_actor()
        current = await self.store.get_expenditure(expenditure_id)
        if current is None:
            raise NotFoundError("expenditure", expenditure_id)
        updated = _validate(
            Expenditure, {**current.model_dump(), **changes, "expenditure_id": expenditure_id}
        )
        updated.stamp_modified(actor)
        return await self.store.update_expenditure(updated)

    async def delete_expenditure(self, expenditure_id: str) -> None:
        await self.attribution.current_actor()
        await self.store.delete_expenditure(expenditure_id)

    async def list_expenditures(self) -> list[Expenditure]:
        return await self.store.list_expenditures()
