"""
Shared fakes for the blockchain access layer tests
"""

import pytest

from platformq_bal import FabricAdapter


class FakeContractHandle:
    """In-memory contract handle recording calls and listener registrations"""

    def __init__(self, result=b"", error=None):
        self.result = result
        self.error = error
        self.register_error = None
        self.calls = []
        self.listeners = {}
        self.removed = []
        self.close_callbacks = {}
        self._next_token = 0

    async def submit_transaction(self, function_name, *args):
        self.calls.append((function_name, args))
        if self.error is not None:
            raise self.error
        return self.result

    def add_contract_listener(self, callback, on_close=None):
        if self.register_error is not None:
            raise self.register_error
        self._next_token += 1
        token = f"listener-{self._next_token}"
        self.listeners[token] = callback
        self.close_callbacks[token] = on_close
        return token

    def remove_contract_listener(self, token):
        self.removed.append(token)
        self.listeners.pop(token, None)
        self.close_callbacks.pop(token, None)

    def fire(self, event):
        for callback in list(self.listeners.values()):
            callback(event)

    def end_stream(self, error=None):
        """End the native event stream of every live listener"""
        for on_close in list(self.close_callbacks.values()):
            if on_close is not None:
                on_close(error)


class FakeGateway:
    def __init__(self, identity="admin@Org1"):
        self.identity = identity

    def get_identity(self):
        return self.identity


class FakeRegistry:
    """Connection registry serving one contract handle"""

    def __init__(self, contract=None, gateway=None, error=None):
        self.contract = contract
        self.gateway = gateway or FakeGateway()
        self.error = error
        self.contract_requests = []

    def get_gateway(self, blockchain_id):
        if self.error is not None:
            raise self.error
        return self.gateway

    def get_contract(self, blockchain_id, channel, chaincode):
        self.contract_requests.append((blockchain_id, channel, chaincode))
        if self.error is not None:
            raise self.error
        return self.contract


@pytest.fixture
def contract():
    """Fake chaincode handle"""
    return FakeContractHandle()


@pytest.fixture
def registry(contract):
    """Registry handing out the fake handle"""
    return FakeRegistry(contract=contract)


@pytest.fixture
def adapter(registry):
    """Fabric adapter wired to the fake registry"""
    return FabricAdapter("fabric-0", registry=registry)
