import pytest

from event_sourcing_core import Aggregate


OPEN_SCHEMA = {
    "type": "object",
    "required": ["owner"],
    "properties": {"owner": {"type": "string"}},
}

AMOUNT_SCHEMA = {
    "type": "object",
    "required": ["amount"],
    "properties": {"amount": {"type": "number", "exclusiveMinimum": 0}},
}


def open_account(cmd, state, aggregate):
    return aggregate.create_event("Opened", {"owner": cmd.payload["owner"]})


async def deposit(cmd, state, aggregate):
    if not state.get("open"):
        raise ValueError("Account is not open")
    return [aggregate.create_event("Deposited", {"amount": cmd.payload["amount"]})]


def opened(payload, state):
    return {**state, "owner": payload["owner"], "open": True, "balance": 0}


def deposited(payload, state):
    # Mutates in place; returning None keeps the (mutated) state
    state["balance"] = state["balance"] + payload["amount"]


def build_account() -> Aggregate:
    return Aggregate(
        "Account",
        commands=[
            {"name": "Open", "version": 1, "schema": OPEN_SCHEMA, "callback": open_account},
            {"name": "Deposit", "version": 1, "schema": AMOUNT_SCHEMA, "callback": deposit},
        ],
        events=[
            {"name": "Opened", "version": 1, "schema": OPEN_SCHEMA, "callback": opened},
            {"name": "Deposited", "version": 1, "schema": AMOUNT_SCHEMA, "callback": deposited},
        ],
    )


@pytest.fixture
def account():
    return build_account()
