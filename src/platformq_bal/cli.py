import asyncio
import json

import click

from .adapter_factory import AdapterFactory
from .config import BalSettings, get_settings
from .connection_registry import GatewayManager
from .logging_config import setup_structured_logging
from .types import BlockchainType, InvalidAddressError
from .utils import resolve_smart_contract_path


async def _probe_fabric(settings: BalSettings, blockchain_id: str) -> str:
    try:
        config = settings.fabric_gateway_config(blockchain_id)
    except ValueError as e:
        return str(e)

    manager = GatewayManager.from_settings(settings)
    manager.register_gateway(config)
    try:
        await manager.initialize(start_health_checks=False)
        factory = AdapterFactory(settings, gateway_manager=manager)
        adapter = factory.get_adapter(BlockchainType.FABRIC, config.connection_profile, config.blockchain_id)
        return adapter.test_connection()
    finally:
        await manager.close()


# --- CLI Commands ---
@click.group()
@click.option("--log-level", default=None, help="Override BAL_LOG_LEVEL.")
@click.pass_context
def cli(ctx, log_level):
    """Tools for the PlatformQ blockchain access layer."""
    settings = get_settings()
    setup_structured_logging(log_level or settings.log_level, settings.log_json)
    ctx.obj = {"settings": settings}


@cli.command("test-connection")
@click.option("--type", "blockchain_type", required=True,
              type=click.Choice([t.value for t in BlockchainType]), help="The backend to probe.")
@click.option("--endpoint", default=None, help="Node URL (Ethereum). Defaults to BAL_ETHEREUM_RPC_URL.")
@click.option("--param", "backend_param", default=None,
              help="Gateway id (Fabric) or average block time in seconds (Ethereum).")
@click.pass_context
def test_connection(ctx, blockchain_type: str, endpoint: str, backend_param: str):
    """
    Checks that a backend is reachable.

    Prints "true" on success, a diagnostic otherwise.
    """
    settings = ctx.obj["settings"]
    chain = BlockchainType(blockchain_type)

    if chain == BlockchainType.FABRIC:
        result = asyncio.run(_probe_fabric(settings, backend_param))
    else:
        factory = AdapterFactory(settings)
        result = factory.get_adapter(chain, endpoint or settings.ethereum_rpc_url, backend_param).test_connection()

    click.echo(result)
    if result != "true":
        ctx.exit(1)


@cli.command("resolve-path")
@click.argument("smart_contract_path")
def resolve_path(smart_contract_path: str):
    """Splits a smart contract path into channel, chaincode and contract."""
    try:
        elements = resolve_smart_contract_path(smart_contract_path)
    except InvalidAddressError as e:
        raise click.ClickException(e.message)

    click.echo(json.dumps({
        "namespace": elements.namespace,
        "container": elements.container,
        "contract_name": elements.contract_name,
    }))


if __name__ == '__main__':
    cli()
