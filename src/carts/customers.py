"""Users and customers as seen by the cart.

Only the linkage matters here: a user may act for several customers and a
customer may have several users. Associating a cart checks both directions.
"""

from pydantic import BaseModel, Field


class User(BaseModel):
    id: str
    customer_ids: list[str] = Field(default_factory=list)

    @property
    def latest_customer_id(self) -> str | None:
        return self.customer_ids[-1] if self.customer_ids else None

    def is_linked_to(self, customer_id) -> bool:
        return str(customer_id) in {str(cid) for cid in self.customer_ids}


class Customer(BaseModel):
    id: str
    user_ids: list[str] = Field(default_factory=list)

    def is_linked_to(self, user_id) -> bool:
        return str(user_id) in {str(uid) for uid in self.user_ids}
