import asyncio
import signal
import sys

from dotenv import load_dotenv

from core.presence import PresenceRotator
from core.reconciler import LiveStateReconciler
from core.registry import TenantRegistry
from core.scheduler import Scheduler
from runtime.version import as_string
from services.discord.client import DiscordClient
from services.discord.runtime.supervisor import DiscordSupervisor
from services.discord.status import DiscordPresence
from services.discord.transport import DiscordNotificationTransport
from services.twitch.api.auth import TwitchAppTokenProvider, TwitchTokenError
from services.twitch.api.streams import TwitchStatusProber
from shared.config.system import load_system_config
from shared.errors import ConfigError, TransportError
from shared.logging.logger import get_logger

log = get_logger("core.app")


# ----------------------------------------------------------------------
# STARTUP BOOTSTRAP
# ----------------------------------------------------------------------

async def clear_tenant_channels(registry: TenantRegistry, transport) -> None:
    """
    Purge every tenant channel once so no notification from a previous run
    is left behind (live state is not persisted).
    """
    for tenant in registry:
        try:
            await transport.clear_history(tenant.channel_id)
        except TransportError as e:
            log.error(f"[{tenant.key}] Failed to clear channel history: {e}")


# ----------------------------------------------------------------------
# MAIN ASYNC ENTRYPOINT
# ----------------------------------------------------------------------

async def main(stop_event: asyncio.Event) -> int:
    # --------------------------------------------------
    # ENV + CONFIG
    # --------------------------------------------------
    load_dotenv()
    log.info("Environment variables loaded")
    log.info(f"{as_string()} booting")

    try:
        config = load_system_config()
        registry = TenantRegistry.load()
    except ConfigError as e:
        log.error(f"Configuration error: {e}")
        return 1

    # --------------------------------------------------
    # TWITCH
    # --------------------------------------------------
    tokens = TwitchAppTokenProvider(
        client_id=config.credentials.twitch_client_id,
        client_secret=config.credentials.twitch_client_secret,
    )
    try:
        await tokens.get_token()
    except TwitchTokenError as e:
        log.error(f"Failed to obtain Twitch token (will retry on next probe): {e}")

    prober = TwitchStatusProber(tokens=tokens)

    # --------------------------------------------------
    # DISCORD + CORE SYSTEMS
    # --------------------------------------------------
    client = DiscordClient(config.credentials.discord_token)
    transport = DiscordNotificationTransport(lambda: client.bot)
    presence = DiscordPresence(lambda: client.bot)

    rotator = PresenceRotator(registry, presence)
    reconciler = LiveStateReconciler(
        prober=prober,
        transport=transport,
        rotator=rotator,
        thumbnail=config.thumbnail,
    )

    async def _request_restart():
        log.info("Scheduled restart reached — stopping process")
        stop_event.set()

    scheduler = Scheduler(
        registry=registry,
        reconciler=reconciler,
        timing=config.timing,
        on_restart=_request_restart,
    )

    async def _on_ready():
        await clear_tenant_channels(registry, transport)
        scheduler.start()

    bootstrap_errors = []

    def _on_bootstrap_error(error: BaseException):
        bootstrap_errors.append(error)
        stop_event.set()

    supervisor = DiscordSupervisor(
        client,
        on_ready=_on_ready,
        on_bootstrap_error=_on_bootstrap_error,
    )

    try:
        await supervisor.start()
        log.info("Discord supervisor started successfully")
    except Exception as e:
        log.error(f"Failed to start Discord supervisor: {e}")
        raise

    # --------------------------------------------------
    # BLOCK UNTIL SHUTDOWN SIGNAL (OR CLIENT EXIT)
    # --------------------------------------------------
    exit_code = 0
    stop_waiter = asyncio.create_task(stop_event.wait())
    client_task = supervisor.client_task

    done, _ = await asyncio.wait(
        {stop_waiter, client_task},
        return_when=asyncio.FIRST_COMPLETED,
    )

    if client_task in done and not client_task.cancelled() and client_task.exception():
        log.error(f"Discord client exited: {client_task.exception()}")
        exit_code = 1

    if bootstrap_errors:
        log.error("Startup bootstrap failed, exiting for restart")
        exit_code = 1

    stop_waiter.cancel()

    log.info("Shutdown initiated")

    # --------------------------------------------------
    # ORDERLY SHUTDOWN, CYCLES FIRST
    # --------------------------------------------------
    try:
        await scheduler.shutdown()
    except Exception as e:
        log.warning(f"Scheduler shutdown error ignored: {e}")

    try:
        await supervisor.shutdown()
    except Exception as e:
        log.warning(f"Discord supervisor shutdown error ignored: {e}")

    log.info("LiveRelay stopped")
    return exit_code


# ----------------------------------------------------------------------
# SIGNAL HANDLING (WINDOWS-SAFE)
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    """
    Windows-safe Ctrl+C handler.
    Uses signal.signal + asyncio.Event to unwind cleanly.
    """

    def _handler(signum, frame):
        try:
            loop.call_soon_threadsafe(stop_event.set)
        except RuntimeError:
            stop_event.set()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except (ValueError, OSError) as e:
        log.debug(f"Signal handlers not installed: {e}")


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run() -> int:
    stop_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    _install_signal_handlers(loop, stop_event)

    exit_code = 0
    try:
        exit_code = loop.run_until_complete(main(stop_event))

    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received — shutdown initiated")
        stop_event.set()

    finally:
        # --------------------------------------------------
        # CANCEL REMAINING TASKS (CLEANLY)
        # --------------------------------------------------
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for task in pending:
            task.cancel()

        if pending:
            loop.run_until_complete(
                asyncio.gather(*pending, return_exceptions=True)
            )

        # --------------------------------------------------
        # FINAL LOOP CLEANUP
        # --------------------------------------------------
        loop.run_until_complete(loop.shutdown_asyncgens())

        asyncio.set_event_loop(None)
        loop.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(run())
