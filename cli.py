#!/usr/bin/env python
"""CLI entry point for the chainflow pipeline engine."""

import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv

from chainflow import http_pool
from chainflow.config import configure_logging
from chainflow.errors import PipelineValidationError
from chainflow.gateway import ChatGateway, probe_models, validate_chat_payload
from chainflow.pipeline import (
    PipelineExecutor,
    RunEvent,
    detect_cycles,
    topological_layers,
    validate_pipeline,
)
from chainflow.pipeline.executor import LAYER_STARTED, NODE_CHUNK, NODE_FINISHED, RUN_BLOCKED
from chainflow.providers import EffortLevel, Provider
from config.loader import AppConfig, build_credentials, load_engine_config, load_pipeline_file

load_dotenv()


@click.group()
@click.option("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
def cli(log_level: Optional[str]):
    """chainflow - run DAGs of streaming LLM calls."""
    configure_logging(log_level or os.getenv("LOG_LEVEL", "WARNING"))


def _gateway(settings: AppConfig) -> ChatGateway:
    return ChatGateway(
        optimize_timeout=settings.gateway.optimize_timeout,
        error_max_chars=settings.gateway.upstream_error_max_chars,
    )


def _print_event(event: RunEvent, stream_text: bool) -> None:
    if event.type == LAYER_STARTED:
        click.echo(f"\n▶ Layer {event.data['layer'] + 1}: {', '.join(event.data['node_ids'])}")
    elif event.type == NODE_CHUNK and stream_text and event.data.get("type") == "text":
        click.echo(event.data["content"], nl=False)
    elif event.type == NODE_FINISHED:
        status = event.data["status"]
        marker = {"success": "✓", "warning": "⚠", "cancelled": "■"}.get(status, "✗")
        detail = event.data["error"] or f"{event.data['token_count']} tokens, {event.data['latency_ms']}ms"
        click.echo(f"\n  {marker} {event.node_id} [{status}] {detail}")
    elif event.type == RUN_BLOCKED:
        click.echo(f"❌ {event.data['error']}: {', '.join(event.data['node_ids'])}")


@cli.command()
@click.argument("pipeline_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--input", "user_input", default=None, help="Value for {{user.input}}")
@click.option("--concurrency", type=int, default=None, help="Max concurrent nodes per layer")
@click.option("--stream/--no-stream", default=False, help="Echo node text as it arrives")
def run(pipeline_file: str, user_input: Optional[str], concurrency: Optional[int], stream: bool):
    """Run a pipeline YAML file against the configured providers."""
    loaded = load_pipeline_file(pipeline_file)
    settings = load_engine_config()

    async def execute():
        await http_pool.init_http_client()
        try:
            executor = PipelineExecutor(
                _gateway(settings),
                build_credentials(settings),
                concurrency=concurrency or loaded.concurrency or settings.engine.concurrency,
                skip_on_failed_parent=settings.engine.skip_on_failed_parent,
                l2_max_chars=settings.engine.l2_max_chars,
            )
            return await executor.run(
                loaded.pipeline,
                loaded.user_input if user_input is None else user_input,
                on_event=lambda event: _print_event(event, stream),
            )
        finally:
            await http_pool.close_http_client()

    click.echo(f"Running pipeline {loaded.pipeline.name} ({len(loaded.pipeline)} nodes)...")
    click.echo("=" * 60)
    try:
        result = asyncio.run(execute())
    except PipelineValidationError as e:
        click.echo(f"\n❌ Invalid pipeline: {e}")
        sys.exit(1)

    if result.blocked:
        sys.exit(1)

    click.echo("\n" + "=" * 60)
    for node_id, node in result.nodes.items():
        if node.output:
            click.echo(f"\n--- {node_id} ---\n{node.output}")

    failed = [nid for nid, node in result.nodes.items() if node.status.value == "error"]
    if failed:
        click.echo(f"\n❌ Run finished with failed nodes: {', '.join(failed)}")
        sys.exit(1)
    click.echo("\n✅ Pipeline complete!")


@cli.command()
@click.argument("prompt")
@click.option("--provider", type=click.Choice([p.value for p in Provider]), default="claude")
@click.option("--model", default="claude-sonnet-4-5", help="Model name")
@click.option("--system", "system_prompt", default="You are a helpful AI assistant.")
@click.option("--temperature", type=float, default=0.7)
@click.option("--max-tokens", type=int, default=4096)
@click.option("--effort", type=click.Choice([e.value for e in EffortLevel]), default="medium")
@click.option("--base-url", default=None, help="Custom endpoint (relay)")
@click.option("--optimize", is_flag=True, help="Run the prompt-optimization pre-pass")
def chat(
    prompt: str,
    provider: str,
    model: str,
    system_prompt: str,
    temperature: float,
    max_tokens: int,
    effort: str,
    base_url: Optional[str],
    optimize: bool,
):
    """Stream a single chat completion to stdout."""
    settings = load_engine_config()
    credentials = build_credentials(settings)
    payload = {
        "provider": provider,
        "model": model,
        "apiKey": credentials.get_key(Provider(provider)) or "",
        "systemPrompt": system_prompt,
        "userPrompt": prompt,
        "temperature": temperature,
        "maxTokens": max_tokens,
        "effort": effort,
        "optimizePrompt": optimize,
    }
    endpoint = base_url or credentials.get_endpoint(Provider(provider))
    if endpoint:
        payload["baseUrl"] = endpoint

    validated = validate_chat_payload(payload)
    if not validated.ok:
        hint = f" (set {credentials.key_env(Provider(provider))})" if validated.status == 401 else ""
        click.echo(f"❌ {validated.message}{hint}")
        sys.exit(1)

    async def stream() -> bool:
        await http_pool.init_http_client()
        failed = False
        try:
            async for chunk in _gateway(settings).stream_chat(validated.payload):
                if chunk.type.value == "text":
                    click.echo(chunk.content, nl=False)
                elif chunk.type.value == "thinking":
                    click.secho(chunk.content, nl=False, dim=True)
                elif chunk.type.value == "error":
                    click.echo(f"\n❌ {chunk.content}")
                    failed = True
        finally:
            await http_pool.close_http_client()
        return not failed

    ok = asyncio.run(stream())
    click.echo()
    if not ok:
        sys.exit(1)


@cli.command()
@click.argument("base_url")
@click.option("--api-key", envvar="CHAINFLOW_PROBE_API_KEY", required=True, help="Relay API key")
@click.option("--model", default=None, help="Model name to look up in the relay list")
def probe(base_url: str, api_key: str, model: Optional[str]):
    """List the models an OpenAI-compatible relay serves."""
    settings = load_engine_config()

    async def run_probe():
        await http_pool.init_http_client()
        try:
            return await probe_models(
                base_url,
                api_key,
                _gateway(settings).transport,
                timeout=settings.gateway.probe_timeout,
                model=model,
            )
        finally:
            await http_pool.close_http_client()

    result = asyncio.run(run_probe())
    if result.error:
        click.echo(f"❌ {result.error}")
        sys.exit(1)
    click.echo(f"✓ {len(result.models)} models from {result.endpoint}")
    for name in result.models:
        click.echo(f"  - {name}")
    if result.recommended:
        pick = result.recommended
        click.echo(f"★ Recommended: {pick.model} ({pick.provider.value})")
    if model:
        if result.matched:
            click.echo(f"✓ {model} is served as {result.matched}")
        else:
            click.echo(f"✗ {model} is not served by this relay")
            sys.exit(1)


@cli.command()
@click.argument("pipeline_file", type=click.Path(exists=True, dir_okay=False))
def plan(pipeline_file: str):
    """Print the execution layers of a pipeline without calling any model."""
    pipeline = load_pipeline_file(pipeline_file).pipeline

    cycles = detect_cycles(pipeline.nodes, pipeline.edges)
    if cycles:
        click.echo(f"❌ Cycle detected between nodes: {', '.join(sorted(cycles))}")
        sys.exit(1)
    try:
        validate_pipeline(pipeline)
    except PipelineValidationError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    click.echo(f"Pipeline {pipeline.name}")
    click.echo("=" * 40)
    for index, layer in enumerate(topological_layers(pipeline.nodes, pipeline.edges), start=1):
        labels = [f"{nid} ({pipeline.get(nid).provider.value}/{pipeline.get(nid).model})" for nid in layer]
        click.echo(f"Layer {index}: {', '.join(labels)}")


@cli.command()
def status():
    """Show configured provider keys and endpoints."""
    credentials = build_credentials(load_engine_config())
    click.echo("chainflow status")
    click.echo("=" * 40)
    click.echo(f"Working Directory: {Path.cwd()}")
    for provider in Provider:
        env_var = credentials.key_env(provider)
        endpoint = credentials.get_endpoint(provider)
        suffix = f" via {endpoint}" if endpoint else ""
        if credentials.get_key(provider):
            click.echo(f"✓ {provider.value}: {env_var} configured{suffix}")
        else:
            click.echo(f"✗ {provider.value}: {env_var} missing")


if __name__ == "__main__":
    cli()
