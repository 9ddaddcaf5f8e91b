import asyncio, logging, os
from datetime import datetime, timezone
import click
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.table import Table

from .adapters.l1_origin_httpx import HttpxL1OriginResolver
from .adapters.parquet_export import ParquetBlockExporter
from .adapters.rpc_httpx import HttpxBlockSource, JsonRpcHttpx
from .adapters.snapshot_json import JSONSnapshotStore
from .adapters.ws_subscriber import WebSocketBlockSubscriber
from .application.feed import LiveFeedCoordinator
from .application.store import BlockWindowStore
from .config import DEFAULT_STATE_PATH, ViewerConfig
from .domain.errors import WindowError

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _short(h: str | None) -> str:
    return f"{h[:10]}…{h[-6:]}" if h and len(h) > 18 else (h or "-")


def render_window(store: BlockWindowStore) -> Table:
    mode = "[green]live[/]" if store.is_live_mode else "[yellow]historical[/]"
    loading = " • [cyan]loading…[/]" if store.is_loading_historical else ""
    title = f"{mode} • tip={store.tip_number:,} • position={store.current_position:,}{loading}"
    table = Table(title=title, expand=True)
    for col in ("block", "hash", "time (UTC)", "txs", "gas used", "base fee", "L1 origin"):
        table.add_column(col)
    for b in store.get_visible_blocks():
        ts = datetime.fromtimestamp(b.timestamp_ms / 1000, tz=timezone.utc).strftime("%H:%M:%S")
        origin = f"{b.l1_origin.l1_number:,}" if b.l1_origin else "-"
        style = "bold" if b.number == store.current_position else None
        table.add_row(f"{b.number:,}", _short(b.hash), ts, str(b.tx_count),
                      b.gas_used or "-", b.base_fee_per_gas or "-", origin, style=style)
    return table


class Ctx:
    def __init__(self, rpc: str | None, ws: str | None, state: str, cfg: ViewerConfig, with_l1: bool) -> None:
        self.rpc, self.ws, self.cfg, self.with_l1 = rpc, ws, cfg, with_l1
        self.snapshots = JSONSnapshotStore(os.path.expanduser(state))

    def require_rpc(self) -> str:
        if not self.rpc:
            raise click.UsageError("--rpc (or L2WINDOW_HTTP_URL) is required for this command")
        return self.rpc

    def resolver(self, rpc: JsonRpcHttpx) -> HttpxL1OriginResolver | None:
        return HttpxL1OriginResolver(rpc) if self.with_l1 else None

    def load(self, store: BlockWindowStore) -> BlockWindowStore:
        try:
            snap = self.snapshots.load()
            if snap is not None:
                store.restore(snap)
        except WindowError as e:
            raise click.ClickException(str(e))
        return store


async def autosave(snapshots: JSONSnapshotStore, store: BlockWindowStore, interval_s: float = 5.0) -> None:
    """Persist the window at most once per interval, off the event loop."""
    dirty = asyncio.Event()
    unsubscribe = store.subscribe(dirty.set)
    try:
        while True:
            await dirty.wait()
            dirty.clear()
            await asyncio.to_thread(snapshots.save, store.snapshot())
            await asyncio.sleep(interval_s)
    finally:
        unsubscribe()


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except WindowError as e:
        raise click.ClickException(str(e))


@click.group()
@click.option("--rpc", envvar="L2WINDOW_HTTP_URL", help="L2 JSON-RPC HTTP endpoint")
@click.option("--ws", envvar="L2WINDOW_WS_URL", help="Optional L2 WebSocket endpoint (newHeads)")
@click.option("--state", envvar="L2WINDOW_STATE", default=DEFAULT_STATE_PATH, show_default=True,
              help="Snapshot file for the window state")
@click.option("--window-size", type=int, default=50, show_default=True, help="Visible blocks")
@click.option("--max-blocks", type=int, default=200, show_default=True, help="Blocks kept in memory")
@click.option("--batch-size", type=int, default=20, show_default=True, help="Point fetches per batch")
@click.option("--poll-interval", type=float, default=2.0, show_default=True, help="Polling fallback, seconds")
@click.option("--l1/--no-l1", "with_l1", default=True, show_default=True, help="Resolve L1 origins")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, rpc, ws, state, window_size, max_blocks, batch_size, poll_interval, with_l1, verbose):
    """l2window — rolling window of L2 blocks with their L1 origins."""
    _setup_logging(verbose)
    try:
        cfg = ViewerConfig(max_blocks=max_blocks, window_size=window_size,
                           batch_size=batch_size, poll_interval_s=poll_interval)
    except ValueError as e:
        raise click.BadParameter(str(e))
    ctx.obj = Ctx(rpc, ws, state, cfg, with_l1)


@cli.command()
@click.option("--seconds", type=float, default=0, help="Stop after this many seconds (0 = until Ctrl-C)")
@click.pass_obj
def watch(obj: Ctx, seconds):
    """Follow the chain tip live."""
    rpc_url = obj.require_rpc()

    async def run():
        rpc = JsonRpcHttpx(rpc_url)
        source = HttpxBlockSource(rpc)
        store = obj.load(BlockWindowStore(source, config=obj.cfg))
        store.set_live_mode(True)
        subscriber = WebSocketBlockSubscriber(obj.ws, source) if obj.ws else None
        try:
            with Live(render_window(store), console=console, refresh_per_second=4) as live:
                store.subscribe(lambda: live.update(render_window(store)))
                saver = asyncio.create_task(autosave(obj.snapshots, store))
                try:
                    async with LiveFeedCoordinator(store, source, subscriber=subscriber, origins=obj.resolver(rpc),
                                                   poll_interval_s=obj.cfg.poll_interval_s):
                        if seconds > 0:
                            await asyncio.sleep(seconds)
                        else:
                            await asyncio.Event().wait()
                finally:
                    saver.cancel()
                    await asyncio.gather(saver, return_exceptions=True)
        finally:
            obj.snapshots.save(store.snapshot())
            await rpc.aclose()

    try:
        _run(run())
    except KeyboardInterrupt:
        console.print("[bold]stopped[/]")


async def _navigate(obj: Ctx, do) -> BlockWindowStore:
    rpc = JsonRpcHttpx(obj.require_rpc())
    try:
        store = obj.load(BlockWindowStore(HttpxBlockSource(rpc), origins=obj.resolver(rpc), config=obj.cfg))
        store.set_tip(await store.source.head_number())
        with console.status("loading blocks…"):
            await do(store)
        obj.snapshots.save(store.snapshot())
        console.print(render_window(store))
        return store
    finally:
        await rpc.aclose()


@cli.command()
@click.argument("block", type=int)
@click.pass_obj
def goto(obj: Ctx, block):
    """Jump to BLOCK and show the window around it."""
    _run(_navigate(obj, lambda s: s.navigate_to_block(block)))


@cli.command()
@click.argument("direction", type=click.Choice(["prev", "next"]))
@click.pass_obj
def step(obj: Ctx, direction):
    """Move one block in display order from the current position."""
    _run(_navigate(obj, lambda s: s.navigate_relative(direction)))


@cli.command()
@click.pass_obj
def live(obj: Ctx):
    """Return the saved window to live mode."""
    store = obj.load(BlockWindowStore(config=obj.cfg))
    store.set_live_mode(True)
    obj.snapshots.save(store.snapshot())
    console.print(render_window(store))


@cli.command()
@click.argument("out_dir", type=click.Path(file_okay=False))
@click.pass_obj
def export(obj: Ctx, out_dir):
    """Write the saved blocks to a Parquet file in OUT_DIR."""
    store = obj.load(BlockWindowStore(config=obj.cfg))
    if not store.blocks:
        raise click.ClickException("no blocks saved yet")
    path = ParquetBlockExporter(out_dir).write_blocks(store.blocks)
    console.print(f"[bold]wrote[/] {len(store.blocks)} blocks → {path}")


@cli.command()
@click.pass_obj
def reset(obj: Ctx):
    """Forget all saved blocks and return to live mode."""
    store = BlockWindowStore(config=obj.cfg)
    obj.snapshots.save(store.snapshot())
    console.print("[bold]state reset[/]")


if __name__ == "__main__":
    cli()
