"""
Tests for smart contract invocation and its two-tier failure reporting
"""

import asyncio

import pytest

from platformq_bal import (
    FabricAdapter, InvalidAddressError, InvocationFailureError, NodeUnreachableError,
    Parameter, TooManyReturnValuesError, Transaction, TransactionState
)

from conftest import FakeRegistry


class BlockingHandle:
    """Handle whose submit_transaction blocks instead of being a coroutine"""

    def __init__(self, result):
        self.result = result
        self.calls = []

    def submit_transaction(self, function_name, *args):
        self.calls.append((function_name, args))
        return self.result


class TestInvokeSmartContract:

    @pytest.mark.asyncio
    async def test_three_segment_path_returns_single_value(self, adapter, contract, registry):
        contract.result = b"42"

        future = adapter.invoke_smart_contract(
            "chan1/cc1/fnA", "transfer",
            [Parameter("to", "string", "bob"), Parameter("amount", "uint", "7")],
            [Parameter("balance", "uint")],
            0.0
        )
        transaction = await future

        assert registry.contract_requests == [("fabric-0", "chan1", "cc1")]
        assert contract.calls == [("transfer", ("bob", "7"))]
        assert transaction.state == TransactionState.RETURN_VALUE
        assert transaction.return_values == (Parameter("balance", "uint", "42"),)

    @pytest.mark.asyncio
    async def test_two_segment_path_without_outputs(self, adapter, contract, registry):
        transaction = await adapter.invoke_smart_contract("chan1/cc1", "ping", [], [], 0.0)

        assert registry.contract_requests == [("fabric-0", "chan1", "cc1")]
        assert transaction == Transaction(state=TransactionState.RETURN_VALUE)
        assert transaction.return_values == ()

    @pytest.mark.asyncio
    async def test_blocking_handle_runs_off_loop(self):
        handle = BlockingHandle("plain text")
        adapter = FabricAdapter("fabric-0", registry=FakeRegistry(contract=handle))

        transaction = await adapter.invoke_smart_contract("chan1/cc1", "read", [], [Parameter("out", "string")], 0.0)

        assert handle.calls == [("read", ())]
        assert transaction.return_values[0].value == "plain text"

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_replaced(self, adapter, contract):
        contract.result = b"ok\xff"

        transaction = await adapter.invoke_smart_contract("chan1/cc1", "read", [], [Parameter("out")], 0.0)

        assert transaction.return_values[0].value == "ok\ufffd"

    @pytest.mark.asyncio
    async def test_too_many_outputs_raise_before_lookup(self, adapter, registry):
        with pytest.raises(TooManyReturnValuesError):
            adapter.invoke_smart_contract(
                "chan1/cc1", "fn", [], [Parameter("a"), Parameter("b")], 0.0
            )

        assert registry.contract_requests == []

    @pytest.mark.asyncio
    async def test_bad_path_raises_synchronously(self, adapter, registry):
        with pytest.raises(InvalidAddressError):
            adapter.invoke_smart_contract("chan1", "fn", [], [], 0.0)

        assert registry.contract_requests == []

    @pytest.mark.asyncio
    async def test_unreachable_registry_raises_synchronously(self, contract):
        registry = FakeRegistry(contract=contract, error=NodeUnreachableError("Gateway fabric-0 is not connected"))
        adapter = FabricAdapter("fabric-0", registry=registry)

        with pytest.raises(NodeUnreachableError, match="not connected"):
            adapter.invoke_smart_contract("chan1/cc1", "fn", [], [], 0.0)

        assert contract.calls == []

    @pytest.mark.asyncio
    async def test_registry_lookup_errors_become_node_unreachable(self, contract):
        adapter = FabricAdapter("fabric-0", registry=FakeRegistry(contract=contract, error=KeyError("chan9")))

        with pytest.raises(NodeUnreachableError):
            adapter.invoke_smart_contract("chan9/cc1", "fn", [], [], 0.0)

    @pytest.mark.asyncio
    async def test_execution_failure_arrives_through_future(self, adapter, contract):
        contract.error = RuntimeError("endorsement policy failure")

        # Returns normally; the failure is only visible on the future
        future = adapter.invoke_smart_contract("chan1/cc1", "fn", [], [Parameter("out")], 0.0)

        with pytest.raises(InvocationFailureError, match="endorsement policy failure"):
            await future

    @pytest.mark.asyncio
    async def test_concurrent_invocations_resolve_independently(self, adapter, contract):
        futures = [
            adapter.invoke_smart_contract("chan1/cc1", f"fn{i}", [], [Parameter("out")], 0.0)
            for i in range(5)
        ]

        results = await asyncio.gather(*futures)

        assert len(results) == 5
        assert sorted(call[0] for call in contract.calls) == [f"fn{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_caller_cancellation_is_respected(self, adapter, contract):
        contract.result = b"late"

        future = adapter.invoke_smart_contract("chan1/cc1", "fn", [], [Parameter("out")], 0.0)
        future.cancel()
        await asyncio.sleep(0.01)

        assert future.cancelled()
        assert contract.calls == [("fn", ())]


class TestTransactionModel:

    def test_to_dict(self):
        transaction = Transaction(
            state=TransactionState.RETURN_VALUE,
            return_values=(Parameter("balance", "uint", "42"),)
        )

        assert transaction.to_dict()["state"] == "return_value"
        assert transaction.to_dict()["returnValues"] == [{"name": "balance", "type": "uint", "value": "42"}]
