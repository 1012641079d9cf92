#!/usr/bin/env python3
"""
strategy/jobs/encode.py - CLI entrypoint for program encoding.

Reads a JSON trade graph, prints the encoded program with the chosen
strategy, the call value and the per-hop transfer plan. Logs go to
stderr, the result to stdout. --executor-only prints bare venue params
for calling one executor directly.

Usage:
    python -m strategy.jobs.encode --chain ethereum < graph.json
    python -m strategy.jobs.encode -c base -i graph.json --fetch-allowances
    python -m strategy.jobs.encode --executor-only < single_hop.json
"""

import asyncio
import json
import logging
import sys
from typing import List, Optional, TextIO

import click

from chains.providers import RPCProvider
from config import ChainConfig, load_chain_config
from core.constants import ErrorCode, UserTransferType
from core.exceptions import TradewireError
from core.logging import get_logger, set_global_context, setup_logging
from core.models import TradeGraph
from core.validators import normalize_address
from dex.registry import VenueEncoderRegistry
from encoding.encoder import ExecutorEncoder, ProgramEncoder
from strategy.approvals import AllowanceKey, ApprovalsManager, fetch_allowances
from strategy.selector import StrategyPlan

logger = get_logger("tradewire.encode")


def allowance_queries(
    graph: TradeGraph,
    selection: StrategyPlan,
    encoders: VenueEncoderRegistry,
    dispatcher: str,
) -> List[AllowanceKey]:
    """Allowances the optimizer will ask about for this graph."""
    queries = [(selection.effective_token_in, graph.sender, dispatcher)]
    for group in selection.groups:
        encoder = encoders.get(group.venue)
        if encoder.requires_approval:
            queries.append((group.token_in, dispatcher, encoder.approval_spender(group.hops[0])))
    return list(dict.fromkeys(queries))


async def prefetch_approvals(
    chain_config: ChainConfig,
    rpc_urls: List[str],
    queries: List[AllowanceKey],
) -> ApprovalsManager:
    async with RPCProvider(chain_config.chain_id, rpc_urls) as provider:
        source = await fetch_allowances(provider, queries)
        logger.debug("Allowances fetched", extra={"context": {"endpoints": provider.get_stats_summary()}})
    return ApprovalsManager(source, chain_config.dispatcher_address)


def encode_graph(
    graph: TradeGraph,
    chain_config: ChainConfig,
    encoders: VenueEncoderRegistry,
    user_transfer_type: UserTransferType,
    rpc_urls: Optional[List[str]] = None,
) -> dict:
    encoder = ProgramEncoder(chain_config, encoders, user_transfer_type)
    selection = encoder.selector.select(graph)
    if rpc_urls:
        queries = allowance_queries(graph, selection, encoders, chain_config.dispatcher_address)
        approvals = asyncio.run(prefetch_approvals(chain_config, rpc_urls, queries))
        encoder = ProgramEncoder(chain_config, encoders, user_transfer_type, approvals=approvals)

    transfers = encoder.optimizer.plan(graph, selection)
    program = encoder.serialize(graph, selection, transfers)
    tx = encoder.transaction(graph, program)
    return {
        "chain": chain_config.chain_key,
        "strategy": program.strategy.name,
        "program": program.hex(),
        "bytes": len(program),
        "to": tx.to,
        "value": str(tx.value),
        "tokens": list(selection.tokens),
        "hops": [
            dict(
                venue=group.venue,
                pool=group.pool,
                token_in=group.token_in,
                token_out=group.token_out,
                legs=len(group.hops),
                **transfer.to_dict(),
            )
            for group, transfer in zip(selection.groups, transfers)
        ],
    }


def encode_executor_call(graph: TradeGraph, chain_config: ChainConfig, encoders: VenueEncoderRegistry) -> dict:
    tx, transfer = ExecutorEncoder(chain_config, encoders).encode(graph)
    return {
        "chain": chain_config.chain_key,
        "executor": tx.to,
        "params": "0x" + tx.data.hex(),
        "bytes": len(tx.data),
        "value": str(tx.value),
        **transfer.to_dict(),
    }


@click.command()
@click.option("--chain", "-c", default="ethereum", help="Chain key from config/chains.yaml")
@click.option("--input", "-i", "input_file", type=click.File("r"), default="-", help="Trade graph JSON (default: stdin)")
@click.option("--executors-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Alternative executors.yaml")
@click.option("--dispatcher-address", default=None, help="Override the configured dispatcher")
@click.option("--user-transfer-type", type=click.Choice([t.value for t in UserTransferType]),
              default=UserTransferType.TRANSFER_FROM.value, help="How the caller funds the run")
@click.option("--fetch-allowances/--no-fetch-allowances", default=False,
              help="Read allowances over RPC before planning approvals")
@click.option("--rpc-url", envvar="RPC_URL", default=None, help="RPC endpoint (default: chain config)")
@click.option("--executor-only", is_flag=True, default=False,
              help="Emit params for calling one executor directly (single hop group)")
@click.option("--log-level", "-l", default="WARNING", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]))
@click.option("--json-logs/--no-json-logs", default=False)
def main(
    chain: str,
    input_file: TextIO,
    executors_file: Optional[str],
    dispatcher_address: Optional[str],
    user_transfer_type: str,
    fetch_allowances: bool,
    rpc_url: Optional[str],
    executor_only: bool,
    log_level: str,
    json_logs: bool,
) -> None:
    """TRADEWIRE encoder - trade graph JSON in, program hex out."""
    setup_logging(level=getattr(logging, log_level), json_format=json_logs)
    set_global_context(service="tradewire-encode", chain=chain)

    try:
        chain_config = load_chain_config(chain)
        if dispatcher_address:
            chain_config.dispatcher_address = normalize_address(dispatcher_address, "dispatcher_address")
        encoders = VenueEncoderRegistry.from_config(chain, executors_file)
        graph = TradeGraph.from_dict(json.load(input_file))
        rpc_urls = None
        if fetch_allowances:
            rpc_urls = [rpc_url] if rpc_url else chain_config.rpc_urls
        if executor_only:
            result = encode_executor_call(graph, chain_config, encoders)
        else:
            result = encode_graph(graph, chain_config, encoders, UserTransferType(user_transfer_type), rpc_urls)
    except TradewireError as e:
        logger.error("Encoding failed", extra={"context": e.to_dict()})
        click.echo(json.dumps({"error": e.to_dict()}), err=True)
        sys.exit(1)
    except (KeyError, ValueError) as e:
        error = TradewireError(str(e), ErrorCode.INVALID_INPUT)
        click.echo(json.dumps({"error": error.to_dict()}), err=True)
        sys.exit(1)

    click.echo(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
