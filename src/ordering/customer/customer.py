"""Customer aggregate — the owner an authenticated checkout is attributed to.

Only the identifier matters to reconciliation: an order is attributed to a
customer solely through the authenticated user id stamped into checkout
metadata. Email is contact data and is never used to look an owner up.

Customers are keyed by the auth layer's user id and registered the first time
that id is seen, at checkout or when a deferred order is materialized.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering


@ordering.aggregate
class Customer:
    email = String(max_length=254)
    name = String(max_length=255)


@ordering.command(part_of="Customer")
class RegisterCustomer:
    customer_id = Identifier()
    email = String(max_length=254)
    name = String(max_length=255)


@ordering.command_handler(part_of=Customer)
class RegisterCustomerHandler:
    @handle(RegisterCustomer)
    def register_customer(self, command):
        """Idempotent on ``customer_id``: an existing customer is left as is."""
        repo = current_domain.repository_for(Customer)
        if command.customer_id:
            try:
                return str(repo.get(command.customer_id).id)
            except ObjectNotFoundError:
                customer = Customer(id=command.customer_id, email=command.email, name=command.name)
        else:
            customer = Customer(email=command.email, name=command.name)
        repo.add(customer)
        return str(customer.id)
