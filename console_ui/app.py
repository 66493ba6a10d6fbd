import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Optional

from config.settings import ConfigurationError, load_settings
from console_ui.console_surface import ConsoleSurface
from core.deck_coordinator import DeckCoordinator
from core.surface import ActionKind

logger = logging.getLogger(__name__)

# Configure default console logging if not already configured
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


async def run(settings_path: Optional[Path] = None) -> int:
    settings = load_settings(settings_path)
    surface = ConsoleSurface()
    coordinator = DeckCoordinator(surface, settings)

    # One region per action kind, named after the kind.
    for kind in ActionKind:
        coordinator.region_appeared(kind, kind.name.lower())

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:  # pragma: no cover - Windows
            pass

    coordinator.start()
    try:
        await stop_event.wait()
    finally:
        await coordinator.stop()
    return 0


def main() -> int:
    path = os.getenv("CIDERDECK_SETTINGS")
    try:
        return asyncio.run(run(Path(path) if path else None))
    except ConfigurationError as exc:
        logger.error("Invalid settings: %s", exc)
        return 1
    except KeyboardInterrupt:
        return 0
